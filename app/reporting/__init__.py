"""Pure helpers for reporting periods and P&L report aggregation."""

from .periods import DateRange, PeriodPair, elapsed_months, resolve_period
from .report_tree import (
    CategoryTotal,
    ExpenseBreakdown,
    ReportDocument,
    ReportTotals,
    aggregate,
    classify_node,
    merge_categories,
    parse_report,
    report_totals,
)

__all__ = [
    "CategoryTotal",
    "DateRange",
    "ExpenseBreakdown",
    "PeriodPair",
    "ReportDocument",
    "ReportTotals",
    "aggregate",
    "classify_node",
    "elapsed_months",
    "merge_categories",
    "parse_report",
    "report_totals",
    "resolve_period",
]
