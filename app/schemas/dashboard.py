"""Schema definitions for the dashboard metrics and expense category endpoints."""
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PeriodRequest(BaseModel):
    """Body shared by the dashboard endpoints."""

    period: str = "this_month"
    # Cache buster; clients send a timestamp number or a string.
    nonce: Optional[Union[int, float, str]] = None


class PeriodRange(_CamelModel):
    start: str
    end: str
    prev_start: str = Field(alias="prevStart")
    prev_end: str = Field(alias="prevEnd")


class Comparison(BaseModel):
    """Current vs. comparator value of one metric."""

    current: Decimal = Decimal("0")
    previous: Decimal = Decimal("0")

    @field_serializer("current", "previous")
    def _serialize_decimal(self, value: Decimal) -> float:
        return float(value)


class SeriesPoint(BaseModel):
    """One month of the year-to-date chart."""

    name: str
    revenue: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")

    @field_serializer("revenue", "expenses")
    def _serialize_decimal(self, value: Decimal) -> float:
        return float(value)


class DashboardMetrics(_CamelModel):
    """Revenue, expenses and net profit for a period and its comparator."""

    connected: bool
    period: str
    range: Optional[PeriodRange] = None
    revenue: Optional[Comparison] = None
    expenses: Optional[Comparison] = None
    net_profit: Optional[Comparison] = Field(default=None, alias="netProfit")
    ytd_series: list[SeriesPoint] = Field(default_factory=list, alias="ytdSeries")
    last_sync_at: Optional[str] = Field(default=None, alias="lastSyncAt")


class CategoryEntry(_CamelModel):
    name: str
    account_id: str = Field(alias="accountId")
    current: Decimal = Decimal("0")
    previous: Decimal = Decimal("0")
    share: Decimal = Decimal("0")

    @field_serializer("current", "previous", "share")
    def _serialize_decimal(self, value: Decimal) -> float:
        return float(value)


class ExpenseCategories(_CamelModel):
    """Per-account expense totals merged across the period and its comparator."""

    connected: bool
    period: str
    range: Optional[PeriodRange] = None
    total: Optional[Comparison] = None
    categories: list[CategoryEntry] = Field(default_factory=list)
    last_sync_at: Optional[str] = Field(default=None, alias="lastSyncAt")


class CompanyRequest(_CamelModel):
    realm_id: Optional[str] = Field(default=None, alias="realmId")


class CompanyInfo(_CamelModel):
    connected: bool = True
    company_name: Optional[str] = Field(default=None, alias="companyName")
    realm_id: Optional[str] = Field(default=None, alias="realmId")
