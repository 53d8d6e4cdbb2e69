"""
API Schemas

Response models for the dashboard endpoints. Fields are declared in
snake_case and serialized as camelCase; every numeric field has already been
coerced by the metric deriver, so these models only shape the output.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict


def to_camel(value: str) -> str:
    parts = value.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# ERRORS
# =============================================================================

class ErrorResponse(CamelModel):
    error: str
    message: str
    token: Optional[str] = None
    family: Optional[str] = None
    retryable: bool = False


# =============================================================================
# DASHBOARD / SR
# =============================================================================

class DashboardSummary(CamelModel):
    total_registrations: int
    total_orders: int
    total_order_value: float
    total_active_srs: int
    average_order_value: float
    conversion_rate: float


class DashboardTrendPoint(CamelModel):
    date: str
    registrations: int
    orders: int
    revenue: float


class SrRosterEntry(CamelModel):
    id: int
    name: Optional[str] = None
    referral_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    join_date: Optional[str] = None
    total_customers_registered: int
    total_orders: int
    total_order_value: float
    conversion_rate: float


class LeaderboardEntry(SrRosterEntry):
    rank: int


class DailyDataPoint(CamelModel):
    date: str
    registrations: int
    orders: int
    order_value: float


class SrProfile(SrRosterEntry):
    daily_data: List[DailyDataPoint]


# =============================================================================
# REGISTRATIONS
# =============================================================================

class RegistrationSummary(CamelModel):
    total_registrations: int
    unique_referral_codes: int
    active_days: int
    avg_registrations_per_day: float
    valid_sr_linked_registrations: int
    direct_registrations: int
    sr_linked_percentage: float


class RegistrationTrend(CamelModel):
    date: str
    day_name: Optional[str] = None
    total_registrations: int
    sr_linked_registrations: int
    direct_registrations: int
    sr_linked_percentage: float


class RegistrationSource(CamelModel):
    source: str
    registrations: int
    percentage: float


# =============================================================================
# SALES
# =============================================================================

class SalesSummary(CamelModel):
    total_orders: int
    total_order_value: float
    total_delivery_charges: float
    total_revenue: float
    unique_customers: int
    unique_referral_codes: int
    active_days: int
    avg_order_value: float
    avg_order_total: float
    avg_delivery_charge: float
    sr_linked_orders: int
    sr_linked_order_total: float
    sr_linked_delivery_charges: float
    sr_linked_revenue: float
    sr_linked_percentage: float


class SalesTrend(CamelModel):
    date: str
    day_name: Optional[str] = None
    total_orders: int
    total_order_value: float
    total_delivery_charges: float
    total_revenue: float
    unique_customers: int
    avg_order_value: float
    avg_order_total: float
    avg_delivery_charge: float
    sr_linked_orders: int
    sr_linked_order_total: float
    sr_linked_delivery_charges: float
    sr_linked_revenue: float
    sr_linked_percentage: float


# =============================================================================
# OPERATIONS
# =============================================================================

class DriverEntry(CamelModel):
    id: int
    name: Optional[str] = None
    mobile: Optional[str] = None
    total_orders_assigned: int
    delivered_count: int
    out_for_delivery_count: int
    delivery_success_rate: float
    avg_delivery_time_minutes: float
    timed_deliveries: int
    active_days: int
    avg_orders_per_day: float
    rank: int


class DriverTrend(CamelModel):
    date: str
    driver_id: int
    driver_name: Optional[str] = None
    orders_assigned: int
    orders_delivered: int
    success_rate: float


class CsrEntry(CamelModel):
    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    total_interactions: int
    new_order_calls: int
    complaint_calls: int
    complaints_resolved: int
    successful_orders: int
    successful_registrations: int
    success_rate: float
    avg_call_duration: float
    total_order_value: float
    rank: int


class CsrTrend(CamelModel):
    date: str
    csr_id: int
    csr_name: Optional[str] = None
    interactions: int
    successful: int
    success_rate: float


class PackingEntry(CamelModel):
    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    total_orders_packed: int
    orders_shipped: int
    orders_delivered: int
    orders_returned: int
    success_rate: float
    rank: int


class PackingTrend(CamelModel):
    date: str
    packer_id: int
    packer_name: Optional[str] = None
    orders_packed: int
    orders_shipped: int


# =============================================================================
# AUTH
# =============================================================================

class LoginRequest(CamelModel):
    password: str


class TokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    expires_in: int
