"""
Database Models - Operational Schema (read-only)

Declarative mappings of the externally owned operational tables the dashboard
aggregates over. The dashboard never writes to these tables; the mappings exist
so aggregation queries can be composed with SQLAlchemy expressions and so tests
and demo tooling can create the same schema locally.

Tables:
- marketing_persons: referrers (SRs) and their referral codes
- users: customer registrations, optionally carrying a referral code
- orders: customer orders with lifecycle status
- transactions: payment attempts per order
- order_statuses: status event log per order (who moved it, when)
- delivery_boys: drivers assigned to orders
- staff: customer-service and packing operators
- csr_interactions: customer-service call log
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class ReferrerStatus(IntEnum):
    """Referrer (marketing person) status as stored in marketing_persons.status"""
    INACTIVE = 0
    ACTIVE = 1

    @classmethod
    def from_raw(cls, value: Any) -> "ReferrerStatus":
        """
        Translate a raw store value into a status.

        Only the exact active sentinel (1, "1" or ACTIVE) is active; booleans,
        NULL and any other code are inactive.
        """
        if isinstance(value, bool) or value is None:
            return cls.INACTIVE
        if isinstance(value, cls):
            return value
        try:
            code = int(str(value).strip())
        except ValueError:
            return cls.INACTIVE
        return cls.ACTIVE if code == cls.ACTIVE.value else cls.INACTIVE


class OrderStatus(str, Enum):
    """Order lifecycle codes as stored in orders.active_status / order_statuses.status"""
    AWAITING_PAYMENT = "1"
    RECEIVED = "2"
    PROCESSED = "3"
    SHIPPED = "4"
    OUT_FOR_DELIVERY = "5"
    DELIVERED = "6"
    CANCELLED = "7"
    RETURNED = "8"

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def label_for(cls, code: Any) -> Optional[str]:
        """Symbolic name for a raw status code, None when absent or unknown"""
        if code is None:
            return None
        try:
            return cls(str(code).strip()).label
        except ValueError:
            return None


# Confirmed through delivered; the only statuses that count toward sales
FULFILLED_STATUSES = (
    OrderStatus.RECEIVED,
    OrderStatus.PROCESSED,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)
FULFILLED_STATUS_CODES = tuple(s.value for s in FULFILLED_STATUSES)

# Packed orders that left the warehouse
SHIPPED_OR_LATER_CODES = (
    OrderStatus.SHIPPED.value,
    OrderStatus.OUT_FOR_DELIVERY.value,
    OrderStatus.DELIVERED.value,
)


class TransactionStatus(str, Enum):
    """Payment transaction outcome"""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class StaffRole(str, Enum):
    """Operator roles tracked on the operations leaderboards"""
    CSR = "csr"
    PACKER = "packer"


class InteractionType(str, Enum):
    """Customer-service call categories"""
    NEW_ORDER = "new_order"
    COMPLAINT = "complaint"
    REGISTRATION = "registration"
    FOLLOW_UP = "follow_up"


class InteractionOutcome(str, Enum):
    """Customer-service call outcomes"""
    SUCCESS = "success"
    RESOLVED = "resolved"
    FAILED = "failed"
    PENDING = "pending"


SUCCESSFUL_OUTCOMES = (InteractionOutcome.SUCCESS.value, InteractionOutcome.RESOLVED.value)


# =============================================================================
# REFERRAL TABLES
# =============================================================================

class MarketingPerson(Base):
    """
    Referrer (SR) Table

    Status is stored as an integer flag; validity is derived, never stored
    (see sr_dashboard.analytics.classifier).
    """
    __tablename__ = "marketing_persons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(191))
    referral_code: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    mobile: Mapped[Optional[str]] = mapped_column(String(32))
    email: Mapped[Optional[str]] = mapped_column(String(191))
    logo: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[Optional[int]] = mapped_column(Integer, default=ReferrerStatus.ACTIVE.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class User(Base):
    """Customer registration; referral_code links to marketing_persons.referral_code"""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(191))
    mobile: Mapped[Optional[str]] = mapped_column(String(32))
    email: Mapped[Optional[str]] = mapped_column(String(191))
    referral_code: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_users_referral_code", "referral_code"),
        Index("idx_users_created_at", "created_at"),
    )


# =============================================================================
# ORDER TABLES
# =============================================================================

class Order(Base):
    """
    Order Table

    final_total is total + delivery_charge as written by the storefront.
    active_status holds an OrderStatus code.
    """
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    delivery_boy_id: Mapped[Optional[int]] = mapped_column(ForeignKey("delivery_boys.id"))
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    delivery_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    final_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    active_status: Mapped[str] = mapped_column(String(4), nullable=False, default=OrderStatus.AWAITING_PAYMENT.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_orders_user", "user_id"),
        Index("idx_orders_created_at", "created_at"),
        Index("idx_orders_status_created", "active_status", "created_at"),
        Index("idx_orders_delivery_boy", "delivery_boy_id"),
    )


class Transaction(Base):
    """Payment transaction; status 'success' marks a paid order"""
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())


class OrderStatusEvent(Base):
    """
    Order Status Event Log

    One row per status transition. created_by references staff.id for
    warehouse transitions (e.g. PROCESSED marks the packer).
    """
    __tablename__ = "order_statuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(4), nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("staff.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_order_statuses_order_status", "order_id", "status"),
        Index("idx_order_statuses_created_by", "created_by", "status"),
    )


# =============================================================================
# OPERATIONS TABLES
# =============================================================================

class DeliveryBoy(Base):
    """Driver Table"""
    __tablename__ = "delivery_boys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(191), nullable=False)
    mobile: Mapped[Optional[str]] = mapped_column(String(32))
    status: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())


class Staff(Base):
    """Customer-service and packing operators"""
    __tablename__ = "staff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(191), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(191))
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())


class CsrInteraction(Base):
    """Customer-service call log"""
    __tablename__ = "csr_interactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    csr_id: Mapped[int] = mapped_column(ForeignKey("staff.id"), nullable=False)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id"))
    interaction_type: Mapped[str] = mapped_column(String(32), nullable=False)
    outcome: Mapped[str] = mapped_column(String(16), nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_csr_interactions_csr_created", "csr_id", "created_at"),
    )
