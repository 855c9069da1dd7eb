"""Dashboard JSON routes: headline metrics and expense categories."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.logger import get_logger
from app.core.security import AuthenticatedUser, get_authenticated_user
from app.dependencies import get_quickbooks_client, get_token_manager
from app.quickbooks import QuickBooksClient, TokenLifecycleManager
from app.schemas.dashboard import DashboardMetrics, ExpenseCategories, PeriodRequest
from app.services.dashboard_metrics import DashboardMetricsService
from app.services.expense_categories import ExpenseCategoryService

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])
LOGGER = get_logger(__name__)


@router.post("/metrics", response_model=DashboardMetrics, response_model_by_alias=True)
async def dashboard_metrics(
    payload: PeriodRequest,
    user: AuthenticatedUser = Depends(get_authenticated_user),
    tokens: TokenLifecycleManager = Depends(get_token_manager),
    client: QuickBooksClient = Depends(get_quickbooks_client),
) -> DashboardMetrics:
    """Return revenue, expenses and net profit for the requested period."""

    LOGGER.debug("Dashboard metrics requested for period=%s", payload.period)
    service = DashboardMetricsService(tokens, client)
    return await service.get_metrics(user.user_id, payload.period)


@router.post(
    "/expense-categories", response_model=ExpenseCategories, response_model_by_alias=True
)
async def expense_categories(
    payload: PeriodRequest,
    user: AuthenticatedUser = Depends(get_authenticated_user),
    tokens: TokenLifecycleManager = Depends(get_token_manager),
    client: QuickBooksClient = Depends(get_quickbooks_client),
) -> ExpenseCategories:
    """Return per-account expense totals for the period and its comparator."""

    service = ExpenseCategoryService(tokens, client)
    return await service.get_categories(user.user_id, payload.period)
