"""Service layer entrypoints for domain logic."""

from .company import CompanyService
from .dashboard_metrics import DashboardMetricsService
from .expense_categories import ExpenseCategoryService
from .snapshot_sync import SnapshotSyncService

__all__ = [
    "CompanyService",
    "DashboardMetricsService",
    "ExpenseCategoryService",
    "SnapshotSyncService",
]
