"""Pydantic schemas for request and response payloads."""

from .dashboard import (
    CategoryEntry,
    CompanyInfo,
    CompanyRequest,
    Comparison,
    DashboardMetrics,
    ExpenseCategories,
    PeriodRange,
    PeriodRequest,
    SeriesPoint,
)

__all__ = [
    "CategoryEntry",
    "CompanyInfo",
    "CompanyRequest",
    "Comparison",
    "DashboardMetrics",
    "ExpenseCategories",
    "PeriodRange",
    "PeriodRequest",
    "SeriesPoint",
]
