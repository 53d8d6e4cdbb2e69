"""
API Routes Module
"""
from .auth import router as auth_router
from .dashboard import router as dashboard_router
from .export import router as export_router
from .health import router as health_router
from .operations import router as operations_router
from .referrers import router as referrers_router
from .registrations import router as registrations_router
from .sales import router as sales_router

__all__ = [
    "auth_router",
    "dashboard_router",
    "export_router",
    "health_router",
    "operations_router",
    "referrers_router",
    "registrations_router",
    "sales_router",
]
