"""
Aggregation Queries

One SQLAlchemy statement builder per metric family, each paired with the
field table MetricDeriver applies to its rows. run_aggregation is the single
entry point: it acquires a pooled session for its own query only, bounds the
query with a timeout, and turns store failures into AggregationError.

Every builder is a pure function of (window, rules, filters); the statement it
returns orders rows deterministically, so repeated runs over an unchanged
snapshot produce identical results.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional

import structlog
from sqlalchemy import and_, case, func, literal_column, not_, select, union_all
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased
from sqlalchemy.sql import Select

from sr_dashboard.analytics.classifier import (
    ReferrerRules,
    source_class_case,
    valid_referrer_clause,
)
from sr_dashboard.analytics.date_window import DateWindow
from sr_dashboard.analytics.errors import AggregationError
from sr_dashboard.analytics.metrics import (
    DerivationSpec,
    average,
    currency,
    date_field,
    day_name,
    derive_metrics,
    derive_rows,
    identifier,
    integer,
    percent,
    round_half_up,
    status_field,
    text_field,
    to_float,
    to_int,
)
from sr_dashboard.analytics.sql import minutes_between
from sr_dashboard.config import get_settings
from sr_dashboard.database.connection import get_db, get_session_factory
from sr_dashboard.database.models import (
    FULFILLED_STATUS_CODES,
    SHIPPED_OR_LATER_CODES,
    CsrInteraction,
    DeliveryBoy,
    InteractionOutcome,
    InteractionType,
    MarketingPerson,
    Order,
    OrderStatus,
    OrderStatusEvent,
    Staff,
    StaffRole,
    SUCCESSFUL_OUTCOMES,
    Transaction,
    TransactionStatus,
    User,
)

logger = structlog.get_logger(__name__)

ACTIVE_OPERATOR = 1


class MetricFamily(str, Enum):
    """Named aggregate computations, each reusable across date windows"""
    DASHBOARD_SUMMARY = "dashboard_summary"
    SR_DAILY_ACTIVITY = "sr_daily_activity"
    SR_ROSTER = "sr_roster"
    REGISTRATION_SUMMARY = "registration_summary"
    REGISTRATION_TRENDS = "registration_trends"
    REGISTRATION_SOURCES = "registration_sources"
    SALES_SUMMARY = "sales_summary"
    SALES_TRENDS = "sales_trends"
    EXPORT_DETAIL = "export_detail"
    DRIVER_PERFORMANCE = "driver_performance"
    DRIVER_TRENDS = "driver_trends"
    CSR_PERFORMANCE = "csr_performance"
    CSR_TRENDS = "csr_trends"
    PACKING_PERFORMANCE = "packing_performance"
    PACKING_TRENDS = "packing_trends"


@dataclass(frozen=True)
class FamilyDefinition:
    """How one family is queried and derived"""
    build: Callable[..., Select]
    spec: DerivationSpec
    single_row: bool = False
    filters: FrozenSet[str] = frozenset()


@dataclass
class AggregateResult:
    """Derived rows of one aggregation run"""
    family: MetricFamily
    window: DateWindow
    rows: List[Dict[str, Any]]
    filters: Dict[str, Any] = field(default_factory=dict)

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None

    def __len__(self) -> int:
        return len(self.rows)


def _referrer_join():
    # An empty code is no referral code; it never matches a referrer
    return and_(MarketingPerson.referral_code == User.referral_code, User.referral_code != "")


def _fulfilled():
    return Order.active_status.in_(FULFILLED_STATUS_CODES)


# =============================================================================
# REGISTRATIONS
# =============================================================================

REGISTRATION_SUMMARY_FIELDS = (
    integer("total_registrations"),
    integer("unique_referral_codes"),
    integer("active_days"),
    average("avg_registrations_per_day", "total_registrations", "active_days"),
    integer("valid_sr_linked_registrations", source="valid_sr_registrations"),
    integer("direct_registrations"),
    percent("sr_linked_percentage", "valid_sr_registrations", "total_registrations"),
)


def build_registration_summary(window: DateWindow, rules: ReferrerRules) -> Select:
    valid = valid_referrer_clause(MarketingPerson, rules)
    return (
        select(
            func.count(func.distinct(User.id)).label("total_registrations"),
            func.count(func.distinct(User.referral_code)).label("unique_referral_codes"),
            func.count(func.distinct(func.date(User.created_at))).label("active_days"),
            func.count(func.distinct(case((valid, User.id)))).label("valid_sr_registrations"),
            func.count(func.distinct(case((not_(valid), User.id)))).label("direct_registrations"),
        )
        .select_from(User)
        .outerjoin(MarketingPerson, _referrer_join())
        .where(window.clause(User.created_at))
    )


REGISTRATION_TRENDS_FIELDS = (
    date_field("date"),
    day_name("day_name", source="date"),
    integer("total_registrations"),
    integer("sr_linked_registrations"),
    integer("direct_registrations"),
    percent("sr_linked_percentage", "sr_linked_registrations", "total_registrations"),
)


def build_registration_trends(window: DateWindow, rules: ReferrerRules) -> Select:
    valid = valid_referrer_clause(MarketingPerson, rules)
    day = func.date(User.created_at)
    return (
        select(
            day.label("date"),
            func.count(func.distinct(User.id)).label("total_registrations"),
            func.count(func.distinct(case((valid, User.id)))).label("sr_linked_registrations"),
            func.count(func.distinct(case((not_(valid), User.id)))).label("direct_registrations"),
        )
        .select_from(User)
        .outerjoin(MarketingPerson, _referrer_join())
        .where(window.clause(User.created_at))
        .group_by(day)
        .order_by(day.desc())
    )


REGISTRATION_SOURCES_FIELDS = (
    text_field("source"),
    integer("registrations"),
    percent("percentage", "registrations", "window_total", places=2),
)


def build_registration_sources(window: DateWindow, rules: ReferrerRules) -> Select:
    # Classify in a subquery so GROUP BY targets a plain column on every dialect
    classified = (
        select(
            User.id.label("user_id"),
            source_class_case(MarketingPerson, User, rules).label("source"),
        )
        .select_from(User)
        .outerjoin(MarketingPerson, _referrer_join())
        .where(window.clause(User.created_at))
        .subquery("classified")
    )
    window_users = aliased(User)
    window_total = (
        select(func.count(window_users.id))
        .where(window.clause(window_users.created_at))
        .scalar_subquery()
    )
    registrations = func.count(func.distinct(classified.c.user_id)).label("registrations")
    return (
        select(classified.c.source, registrations, window_total.label("window_total"))
        .group_by(classified.c.source)
        .order_by(registrations.desc(), classified.c.source)
    )


# =============================================================================
# SALES
# =============================================================================

def _sales_columns(valid):
    revenue = Order.total + Order.delivery_charge
    return (
        func.count(func.distinct(Order.id)).label("total_orders"),
        func.sum(Order.total).label("total_order_value"),
        func.sum(Order.delivery_charge).label("total_delivery_charges"),
        func.sum(revenue).label("total_revenue"),
        func.sum(Order.final_total).label("total_final"),
        func.count(func.distinct(Order.user_id)).label("unique_customers"),
        func.count(func.distinct(case((valid, Order.id)))).label("sr_linked_orders"),
        func.sum(case((valid, Order.total))).label("sr_linked_order_total"),
        func.sum(case((valid, Order.delivery_charge))).label("sr_linked_delivery_charges"),
        func.sum(case((valid, revenue))).label("sr_linked_revenue"),
    )


SALES_SUMMARY_FIELDS = (
    integer("total_orders"),
    currency("total_order_value"),
    currency("total_delivery_charges"),
    currency("total_revenue"),
    integer("unique_customers"),
    integer("unique_referral_codes"),
    integer("active_days"),
    average("avg_order_value", "total_final", "total_orders"),
    average("avg_order_total", "total_order_value", "total_orders"),
    average("avg_delivery_charge", "total_delivery_charges", "total_orders"),
    integer("sr_linked_orders"),
    currency("sr_linked_order_total"),
    currency("sr_linked_delivery_charges"),
    currency("sr_linked_revenue"),
    percent("sr_linked_percentage", "sr_linked_orders", "total_orders"),
)


def build_sales_summary(window: DateWindow, rules: ReferrerRules) -> Select:
    valid = valid_referrer_clause(MarketingPerson, rules)
    return (
        select(
            *_sales_columns(valid),
            func.count(func.distinct(User.referral_code)).label("unique_referral_codes"),
            func.count(func.distinct(func.date(Order.created_at))).label("active_days"),
        )
        .select_from(Order)
        .join(User, User.id == Order.user_id)
        .outerjoin(MarketingPerson, _referrer_join())
        .where(_fulfilled(), window.clause(Order.created_at))
    )


SALES_TRENDS_FIELDS = (
    date_field("date"),
    day_name("day_name", source="date"),
    integer("total_orders"),
    currency("total_order_value"),
    currency("total_delivery_charges"),
    currency("total_revenue"),
    integer("unique_customers"),
    average("avg_order_value", "total_final", "total_orders"),
    average("avg_order_total", "total_order_value", "total_orders"),
    average("avg_delivery_charge", "total_delivery_charges", "total_orders"),
    integer("sr_linked_orders"),
    currency("sr_linked_order_total"),
    currency("sr_linked_delivery_charges"),
    currency("sr_linked_revenue"),
    percent("sr_linked_percentage", "sr_linked_orders", "total_orders"),
)


def build_sales_trends(window: DateWindow, rules: ReferrerRules) -> Select:
    valid = valid_referrer_clause(MarketingPerson, rules)
    day = func.date(Order.created_at)
    return (
        select(day.label("date"), *_sales_columns(valid))
        .select_from(Order)
        .join(User, User.id == Order.user_id)
        .outerjoin(MarketingPerson, _referrer_join())
        .where(_fulfilled(), window.clause(Order.created_at))
        .group_by(day)
        .order_by(day.desc())
    )


# =============================================================================
# SR ROSTER AND ACTIVITY
# =============================================================================

SR_ROSTER_FIELDS = (
    integer("id"),
    text_field("name"),
    text_field("referral_code"),
    text_field("phone"),
    text_field("email"),
    date_field("join_date"),
    integer("total_customers_registered"),
    integer("total_orders"),
    currency("total_order_value"),
    percent("conversion_rate", "total_orders", "total_customers_registered"),
)


def build_sr_roster(
    window: DateWindow,
    rules: ReferrerRules,
    referrer_id: Optional[int] = None,
    referral_code: Optional[str] = None,
) -> Select:
    """
    Per-referrer rollup of customers registered in the window and every
    fulfilled order those customers placed.
    """
    registered = func.count(func.distinct(User.id)).label("total_customers_registered")
    statement = (
        select(
            MarketingPerson.id,
            MarketingPerson.name,
            MarketingPerson.referral_code,
            MarketingPerson.mobile.label("phone"),
            MarketingPerson.email,
            MarketingPerson.created_at.label("join_date"),
            registered,
            func.count(func.distinct(Order.id)).label("total_orders"),
            func.sum(Order.final_total).label("total_order_value"),
        )
        .select_from(MarketingPerson)
        .outerjoin(User, and_(_referrer_join(), window.clause(User.created_at)))
        .outerjoin(Order, and_(Order.user_id == User.id, _fulfilled()))
        .where(valid_referrer_clause(MarketingPerson, rules))
        .group_by(
            MarketingPerson.id,
            MarketingPerson.name,
            MarketingPerson.referral_code,
            MarketingPerson.mobile,
            MarketingPerson.email,
            MarketingPerson.created_at,
        )
        .order_by(registered.desc(), MarketingPerson.id)
    )
    if referrer_id is not None:
        statement = statement.where(MarketingPerson.id == referrer_id)
    if referral_code is not None:
        statement = statement.where(MarketingPerson.referral_code == referral_code)
    return statement


SR_DAILY_ACTIVITY_FIELDS = (
    text_field("sr_code"),
    date_field("date"),
    text_field("type"),
    integer("count"),
    currency("value"),
)


def build_sr_daily_activity(
    window: DateWindow,
    rules: ReferrerRules,
    referral_code: Optional[str] = None,
) -> Select:
    """Registrations and fulfilled orders per (referral code, day) for valid referrers"""
    valid = valid_referrer_clause(MarketingPerson, rules)
    reg_day = func.date(User.created_at)
    registrations = (
        select(
            User.referral_code.label("sr_code"),
            reg_day.label("date"),
            literal_column("'registrations'").label("type"),
            func.count(User.id).label("count"),
            literal_column("0").label("value"),
        )
        .select_from(User)
        .join(MarketingPerson, _referrer_join())
        .where(valid, window.clause(User.created_at))
        .group_by(User.referral_code, reg_day)
    )

    order_day = func.date(Order.created_at)
    orders = (
        select(
            User.referral_code.label("sr_code"),
            order_day.label("date"),
            literal_column("'orders'").label("type"),
            func.count(Order.id).label("count"),
            func.sum(Order.final_total).label("value"),
        )
        .select_from(Order)
        .join(User, User.id == Order.user_id)
        .join(MarketingPerson, _referrer_join())
        .where(valid, _fulfilled(), window.clause(Order.created_at))
        .group_by(User.referral_code, order_day)
    )

    if referral_code is not None:
        registrations = registrations.where(User.referral_code == referral_code)
        orders = orders.where(User.referral_code == referral_code)

    activity = union_all(registrations, orders).subquery("activity")
    return select(activity).order_by(
        activity.c.date.desc(),
        activity.c.sr_code,
        activity.c.type,
    )


DASHBOARD_SUMMARY_FIELDS = (
    integer("total_registrations"),
    integer("total_orders"),
    currency("total_order_value"),
    integer("total_active_srs"),
    average("average_order_value", "total_order_value", "total_orders"),
    percent("conversion_rate", "total_orders", "total_registrations"),
)


def build_dashboard_summary(window: DateWindow, rules: ReferrerRules) -> Select:
    """Valid referrers only; orders count when fulfilled and paid"""
    paid = (
        select(Transaction.id)
        .where(
            Transaction.order_id == Order.id,
            Transaction.status == TransactionStatus.SUCCESS.value,
        )
        .correlate(Order)
        .exists()
    )
    return (
        select(
            func.count(func.distinct(User.id)).label("total_registrations"),
            func.count(func.distinct(Order.id)).label("total_orders"),
            func.sum(Order.final_total).label("total_order_value"),
            func.count(func.distinct(MarketingPerson.id)).label("total_active_srs"),
        )
        .select_from(MarketingPerson)
        .outerjoin(User, and_(_referrer_join(), window.clause(User.created_at)))
        .outerjoin(Order, and_(Order.user_id == User.id, _fulfilled(), paid))
        .where(valid_referrer_clause(MarketingPerson, rules))
    )


EXPORT_DETAIL_FIELDS = (
    text_field("sr_name"),
    text_field("sr_code"),
    text_field("customer_name"),
    text_field("customer_phone"),
    date_field("registration_date"),
    identifier("order_id"),
    currency("order_value"),
    date_field("order_date"),
    status_field("order_status"),
)


def build_export_detail(window: DateWindow, rules: ReferrerRules) -> Select:
    """One row per (customer, order); customers without orders keep a null order"""
    return (
        select(
            MarketingPerson.name.label("sr_name"),
            MarketingPerson.referral_code.label("sr_code"),
            User.name.label("customer_name"),
            User.mobile.label("customer_phone"),
            User.created_at.label("registration_date"),
            Order.id.label("order_id"),
            Order.final_total.label("order_value"),
            Order.created_at.label("order_date"),
            Order.active_status.label("order_status"),
        )
        .select_from(MarketingPerson)
        .join(User, and_(_referrer_join(), window.clause(User.created_at)))
        .outerjoin(Order, Order.user_id == User.id)
        .where(valid_referrer_clause(MarketingPerson, rules))
        .order_by(
            MarketingPerson.name,
            MarketingPerson.id,
            User.created_at.desc(),
            User.id,
            Order.created_at.desc(),
            Order.id,
        )
    )


# =============================================================================
# OPERATIONS
# =============================================================================

DRIVER_PERFORMANCE_FIELDS = (
    integer("id"),
    text_field("name"),
    text_field("mobile"),
    integer("total_orders_assigned"),
    integer("delivered_count"),
    integer("out_for_delivery_count"),
    percent("delivery_success_rate", "delivered_count", "total_orders_assigned"),
    average("avg_delivery_time_minutes", "delivery_minutes_total", "timed_deliveries", places=1),
    integer("timed_deliveries"),
    integer("active_days"),
    average("avg_orders_per_day", "total_orders_assigned", "active_days"),
)


def _delivery_timing():
    """First out-for-delivery and delivered timestamps per order"""
    event = OrderStatusEvent
    return (
        select(
            event.order_id.label("order_id"),
            func.min(
                case((event.status == OrderStatus.OUT_FOR_DELIVERY.value, event.created_at))
            ).label("out_at"),
            func.min(
                case((event.status == OrderStatus.DELIVERED.value, event.created_at))
            ).label("delivered_at"),
        )
        .group_by(event.order_id)
        .subquery("delivery_timing")
    )


def build_driver_performance(
    window: DateWindow,
    rules: ReferrerRules,
    operator_id: Optional[int] = None,
) -> Select:
    timing = _delivery_timing()
    elapsed = minutes_between(timing.c.out_at, timing.c.delivered_at)
    statement = (
        select(
            DeliveryBoy.id,
            DeliveryBoy.name,
            DeliveryBoy.mobile,
            func.count(func.distinct(Order.id)).label("total_orders_assigned"),
            func.count(func.distinct(
                case((Order.active_status == OrderStatus.DELIVERED.value, Order.id))
            )).label("delivered_count"),
            func.count(func.distinct(
                case((Order.active_status == OrderStatus.OUT_FOR_DELIVERY.value, Order.id))
            )).label("out_for_delivery_count"),
            func.sum(elapsed).label("delivery_minutes_total"),
            func.count(elapsed).label("timed_deliveries"),
            func.count(func.distinct(func.date(Order.created_at))).label("active_days"),
        )
        .select_from(DeliveryBoy)
        .outerjoin(
            Order,
            and_(Order.delivery_boy_id == DeliveryBoy.id, window.clause(Order.created_at)),
        )
        .outerjoin(timing, timing.c.order_id == Order.id)
        .where(DeliveryBoy.status == ACTIVE_OPERATOR)
        .group_by(DeliveryBoy.id, DeliveryBoy.name, DeliveryBoy.mobile)
        .order_by(DeliveryBoy.id)
    )
    if operator_id is not None:
        statement = statement.where(DeliveryBoy.id == operator_id)
    return statement


DRIVER_TRENDS_FIELDS = (
    date_field("date"),
    integer("driver_id"),
    text_field("driver_name"),
    integer("orders_assigned"),
    integer("orders_delivered"),
    percent("success_rate", "orders_delivered", "orders_assigned"),
)


def build_driver_trends(
    window: DateWindow,
    rules: ReferrerRules,
    operator_id: Optional[int] = None,
) -> Select:
    day = func.date(Order.created_at)
    statement = (
        select(
            day.label("date"),
            DeliveryBoy.id.label("driver_id"),
            DeliveryBoy.name.label("driver_name"),
            func.count(func.distinct(Order.id)).label("orders_assigned"),
            func.count(func.distinct(
                case((Order.active_status == OrderStatus.DELIVERED.value, Order.id))
            )).label("orders_delivered"),
        )
        .select_from(DeliveryBoy)
        .join(Order, Order.delivery_boy_id == DeliveryBoy.id)
        .where(DeliveryBoy.status == ACTIVE_OPERATOR, window.clause(Order.created_at))
        .group_by(day, DeliveryBoy.id, DeliveryBoy.name)
        .order_by(day.desc(), DeliveryBoy.name, DeliveryBoy.id)
    )
    if operator_id is not None:
        statement = statement.where(DeliveryBoy.id == operator_id)
    return statement


CSR_PERFORMANCE_FIELDS = (
    integer("id"),
    text_field("name"),
    text_field("email"),
    integer("total_interactions"),
    integer("new_order_calls"),
    integer("complaint_calls"),
    integer("complaints_resolved"),
    integer("successful_orders"),
    integer("successful_registrations"),
    percent("success_rate", "successful_interactions", "total_interactions"),
    average("avg_call_duration", "call_minutes_total", "total_interactions", places=1),
    currency("total_order_value"),
)


def _interaction_count(*conditions):
    return func.count(case((and_(*conditions), CsrInteraction.id)))


def build_csr_performance(
    window: DateWindow,
    rules: ReferrerRules,
    operator_id: Optional[int] = None,
) -> Select:
    ci = CsrInteraction
    # Each linked order counts once per CSR, however many calls mention it
    linked_orders = (
        select(ci.csr_id, ci.order_id)
        .where(ci.order_id.isnot(None), window.clause(ci.created_at))
        .distinct()
        .subquery("csr_linked_orders")
    )
    order_values = (
        select(linked_orders.c.csr_id, func.sum(Order.final_total).label("order_value"))
        .join(Order, Order.id == linked_orders.c.order_id)
        .where(_fulfilled())
        .group_by(linked_orders.c.csr_id)
        .subquery("csr_order_values")
    )
    statement = (
        select(
            Staff.id,
            Staff.name,
            Staff.email,
            func.count(ci.id).label("total_interactions"),
            _interaction_count(ci.interaction_type == InteractionType.NEW_ORDER.value).label("new_order_calls"),
            _interaction_count(ci.interaction_type == InteractionType.COMPLAINT.value).label("complaint_calls"),
            _interaction_count(
                ci.interaction_type == InteractionType.COMPLAINT.value,
                ci.outcome == InteractionOutcome.RESOLVED.value,
            ).label("complaints_resolved"),
            _interaction_count(
                ci.interaction_type == InteractionType.NEW_ORDER.value,
                ci.outcome == InteractionOutcome.SUCCESS.value,
            ).label("successful_orders"),
            _interaction_count(
                ci.interaction_type == InteractionType.REGISTRATION.value,
                ci.outcome == InteractionOutcome.SUCCESS.value,
            ).label("successful_registrations"),
            _interaction_count(ci.outcome.in_(SUCCESSFUL_OUTCOMES)).label("successful_interactions"),
            (func.sum(ci.duration_seconds) / 60.0).label("call_minutes_total"),
            func.max(order_values.c.order_value).label("total_order_value"),
        )
        .select_from(Staff)
        .outerjoin(ci, and_(ci.csr_id == Staff.id, window.clause(ci.created_at)))
        .outerjoin(order_values, order_values.c.csr_id == Staff.id)
        .where(Staff.role == StaffRole.CSR.value, Staff.status == ACTIVE_OPERATOR)
        .group_by(Staff.id, Staff.name, Staff.email)
        .order_by(Staff.id)
    )
    if operator_id is not None:
        statement = statement.where(Staff.id == operator_id)
    return statement


CSR_TRENDS_FIELDS = (
    date_field("date"),
    integer("csr_id"),
    text_field("csr_name"),
    integer("interactions"),
    integer("successful"),
    percent("success_rate", "successful", "interactions"),
)


def build_csr_trends(
    window: DateWindow,
    rules: ReferrerRules,
    operator_id: Optional[int] = None,
) -> Select:
    ci = CsrInteraction
    day = func.date(ci.created_at)
    statement = (
        select(
            day.label("date"),
            Staff.id.label("csr_id"),
            Staff.name.label("csr_name"),
            func.count(ci.id).label("interactions"),
            _interaction_count(ci.outcome.in_(SUCCESSFUL_OUTCOMES)).label("successful"),
        )
        .select_from(Staff)
        .join(ci, ci.csr_id == Staff.id)
        .where(
            Staff.role == StaffRole.CSR.value,
            Staff.status == ACTIVE_OPERATOR,
            window.clause(ci.created_at),
        )
        .group_by(day, Staff.id, Staff.name)
        .order_by(day.desc(), Staff.name, Staff.id)
    )
    if operator_id is not None:
        statement = statement.where(Staff.id == operator_id)
    return statement


PACKING_PERFORMANCE_FIELDS = (
    integer("id"),
    text_field("name"),
    text_field("email"),
    integer("total_orders_packed"),
    integer("orders_shipped"),
    integer("orders_delivered"),
    integer("orders_returned"),
    percent("success_rate", "orders_delivered", "total_orders_packed"),
)


def _packing_join(window: DateWindow):
    event = OrderStatusEvent
    return and_(
        event.created_by == Staff.id,
        event.status == OrderStatus.PROCESSED.value,
        window.clause(event.created_at),
    )


def build_packing_performance(
    window: DateWindow,
    rules: ReferrerRules,
    operator_id: Optional[int] = None,
) -> Select:
    event = OrderStatusEvent
    statement = (
        select(
            Staff.id,
            Staff.name,
            Staff.email,
            func.count(func.distinct(event.order_id)).label("total_orders_packed"),
            func.count(func.distinct(
                case((Order.active_status.in_(SHIPPED_OR_LATER_CODES), Order.id))
            )).label("orders_shipped"),
            func.count(func.distinct(
                case((Order.active_status == OrderStatus.DELIVERED.value, Order.id))
            )).label("orders_delivered"),
            func.count(func.distinct(
                case((Order.active_status == OrderStatus.RETURNED.value, Order.id))
            )).label("orders_returned"),
        )
        .select_from(Staff)
        .outerjoin(event, _packing_join(window))
        .outerjoin(Order, Order.id == event.order_id)
        .where(Staff.role == StaffRole.PACKER.value, Staff.status == ACTIVE_OPERATOR)
        .group_by(Staff.id, Staff.name, Staff.email)
        .order_by(Staff.id)
    )
    if operator_id is not None:
        statement = statement.where(Staff.id == operator_id)
    return statement


PACKING_TRENDS_FIELDS = (
    date_field("date"),
    integer("packer_id"),
    text_field("packer_name"),
    integer("orders_packed"),
    integer("orders_shipped"),
)


def build_packing_trends(
    window: DateWindow,
    rules: ReferrerRules,
    operator_id: Optional[int] = None,
) -> Select:
    event = OrderStatusEvent
    day = func.date(event.created_at)
    statement = (
        select(
            day.label("date"),
            Staff.id.label("packer_id"),
            Staff.name.label("packer_name"),
            func.count(func.distinct(event.order_id)).label("orders_packed"),
            func.count(func.distinct(
                case((Order.active_status.in_(SHIPPED_OR_LATER_CODES), Order.id))
            )).label("orders_shipped"),
        )
        .select_from(Staff)
        .join(event, _packing_join(window))
        .join(Order, Order.id == event.order_id)
        .where(Staff.role == StaffRole.PACKER.value, Staff.status == ACTIVE_OPERATOR)
        .group_by(day, Staff.id, Staff.name)
        .order_by(day.desc(), Staff.name, Staff.id)
    )
    if operator_id is not None:
        statement = statement.where(Staff.id == operator_id)
    return statement


# =============================================================================
# REGISTRY
# =============================================================================

OPERATOR_FILTERS = frozenset({"operator_id"})

FAMILIES: Dict[MetricFamily, FamilyDefinition] = {
    MetricFamily.DASHBOARD_SUMMARY: FamilyDefinition(
        build_dashboard_summary, DASHBOARD_SUMMARY_FIELDS, single_row=True,
    ),
    MetricFamily.SR_DAILY_ACTIVITY: FamilyDefinition(
        build_sr_daily_activity, SR_DAILY_ACTIVITY_FIELDS, filters=frozenset({"referral_code"}),
    ),
    MetricFamily.SR_ROSTER: FamilyDefinition(
        build_sr_roster, SR_ROSTER_FIELDS, filters=frozenset({"referrer_id", "referral_code"}),
    ),
    MetricFamily.REGISTRATION_SUMMARY: FamilyDefinition(
        build_registration_summary, REGISTRATION_SUMMARY_FIELDS, single_row=True,
    ),
    MetricFamily.REGISTRATION_TRENDS: FamilyDefinition(build_registration_trends, REGISTRATION_TRENDS_FIELDS),
    MetricFamily.REGISTRATION_SOURCES: FamilyDefinition(build_registration_sources, REGISTRATION_SOURCES_FIELDS),
    MetricFamily.SALES_SUMMARY: FamilyDefinition(build_sales_summary, SALES_SUMMARY_FIELDS, single_row=True),
    MetricFamily.SALES_TRENDS: FamilyDefinition(build_sales_trends, SALES_TRENDS_FIELDS),
    MetricFamily.EXPORT_DETAIL: FamilyDefinition(build_export_detail, EXPORT_DETAIL_FIELDS),
    MetricFamily.DRIVER_PERFORMANCE: FamilyDefinition(
        build_driver_performance, DRIVER_PERFORMANCE_FIELDS, filters=OPERATOR_FILTERS,
    ),
    MetricFamily.DRIVER_TRENDS: FamilyDefinition(build_driver_trends, DRIVER_TRENDS_FIELDS, filters=OPERATOR_FILTERS),
    MetricFamily.CSR_PERFORMANCE: FamilyDefinition(
        build_csr_performance, CSR_PERFORMANCE_FIELDS, filters=OPERATOR_FILTERS,
    ),
    MetricFamily.CSR_TRENDS: FamilyDefinition(build_csr_trends, CSR_TRENDS_FIELDS, filters=OPERATOR_FILTERS),
    MetricFamily.PACKING_PERFORMANCE: FamilyDefinition(
        build_packing_performance, PACKING_PERFORMANCE_FIELDS, filters=OPERATOR_FILTERS,
    ),
    MetricFamily.PACKING_TRENDS: FamilyDefinition(
        build_packing_trends, PACKING_TRENDS_FIELDS, filters=OPERATOR_FILTERS,
    ),
}


def build_statement(
    family: MetricFamily,
    window: DateWindow,
    extra_filters: Optional[Mapping[str, Any]] = None,
    rules: Optional[ReferrerRules] = None,
) -> Select:
    """
    Build the statement for a family without executing it.

    Raises:
        ValueError: Unknown family or filter not supported by the family
    """
    definition = FAMILIES[MetricFamily(family)]
    filters = {k: v for k, v in (extra_filters or {}).items() if v is not None}
    unsupported = set(filters) - definition.filters
    if unsupported:
        raise ValueError(f"{MetricFamily(family).value} does not accept filters {sorted(unsupported)}")
    return definition.build(window, rules or ReferrerRules.from_settings(), **filters)


async def run_aggregation(
    family: MetricFamily,
    window: DateWindow,
    extra_filters: Optional[Mapping[str, Any]] = None,
    *,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    rules: Optional[ReferrerRules] = None,
    timeout: Optional[float] = None,
) -> AggregateResult:
    """
    Execute one aggregate family over a window and derive its rows.

    A session is acquired for this query only and released on exit. Summary
    families always yield exactly one row, all zeros for an empty window.

    Args:
        family: Metric family to run
        window: Resolved date window
        extra_filters: Family-specific filters (e.g. referrer_id, operator_id)
        session_factory: Session source, defaults to the initialized pool
        rules: Referrer validity rules, defaults to the configured rules
        timeout: Seconds before the query is abandoned

    Raises:
        AggregationError: The store was unreachable, errored or timed out
    """
    family = MetricFamily(family)
    definition = FAMILIES[family]
    filters = {k: v for k, v in (extra_filters or {}).items() if v is not None}
    statement = build_statement(family, window, filters, rules)

    if timeout is None:
        timeout = get_settings().dashboard.query_timeout_seconds

    log = logger.bind(family=family.value, window=window.describe(), filters=filters)

    if session_factory is None:
        try:
            session_factory = get_session_factory()
        except RuntimeError as e:
            log.error("aggregation_failed", error=str(e), error_type=type(e).__name__)
            raise AggregationError(family.value, window.token, str(e), filters) from e

    start = time.perf_counter()
    try:
        async with get_db(session_factory) as db:
            result = await asyncio.wait_for(db.execute(statement), timeout=timeout)
            raw_rows = result.mappings().all()
    except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
        message = str(e) or type(e).__name__
        log.error("aggregation_failed", error=message, error_type=type(e).__name__)
        raise AggregationError(family.value, window.token, message, filters) from e

    rows = derive_rows(raw_rows, definition.spec)
    if definition.single_row and not rows:
        rows = [derive_metrics(None, definition.spec)]

    log.debug(
        "aggregation_completed",
        rows=len(rows),
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
    )
    return AggregateResult(family=family, window=window, rows=rows, filters=filters)


# =============================================================================
# ACTIVITY FOLDS
# =============================================================================

def _fold_activity(rows: Iterable[Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    days: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        day = row.get("date")
        if day is None:
            continue
        bucket = days.setdefault(day, {"date": day, "registrations": 0, "orders": 0, "value": 0.0})
        if row.get("type") == "registrations":
            bucket["registrations"] += to_int(row.get("count"))
        elif row.get("type") == "orders":
            bucket["orders"] += to_int(row.get("count"))
            bucket["value"] += to_float(row.get("value"))
    return days


def fold_dashboard_trends(rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Daily totals across all referrers, oldest day first"""
    days = _fold_activity(rows)
    return [
        {
            "date": day,
            "registrations": bucket["registrations"],
            "orders": bucket["orders"],
            "revenue": round_half_up(bucket["value"], 2),
        }
        for day, bucket in sorted(days.items())
    ]


def fold_daily_data(rows: Iterable[Mapping[str, Any]], referral_code: Optional[str] = None) -> List[Dict[str, Any]]:
    """Daily totals for one referrer, most recent day first"""
    if referral_code is not None:
        rows = [row for row in rows if row.get("sr_code") == referral_code]
    days = _fold_activity(rows)
    return [
        {
            "date": day,
            "registrations": bucket["registrations"],
            "orders": bucket["orders"],
            "order_value": round_half_up(bucket["value"], 2),
        }
        for day, bucket in sorted(days.items(), reverse=True)
    ]
