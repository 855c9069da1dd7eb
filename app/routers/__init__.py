"""FastAPI routers for the dashboard API."""

from .company import router as company_router
from .dashboard import router as dashboard_router

__all__ = [
    "company_router",
    "dashboard_router",
]
