"""Service producing the dashboard's revenue, expense and net profit comparison."""
from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from typing import Callable

from app.core.logger import get_logger, log_context, timeit
from app.quickbooks import (
    NotConnectedError,
    QuickBooksClient,
    TokenLifecycleManager,
    TransientUpstreamError,
)
from app.reporting import (
    DateRange,
    ReportDocument,
    ReportTotals,
    elapsed_months,
    parse_report,
    report_totals,
    resolve_period,
)
from app.reporting.periods import PERIOD_TOKENS
from app.schemas.dashboard import Comparison, DashboardMetrics, PeriodRange, SeriesPoint

LOGGER = get_logger(__name__)

DEFAULT_DASHBOARD_PERIOD = "this_month"
MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def normalize_period(token: str | None) -> str:
    """Dashboard requests with an unrecognised period show the current month."""

    return token if token in PERIOD_TOKENS else DEFAULT_DASHBOARD_PERIOD


class ReportFetcher:
    """Fetch and parse P&L reports for one realm with an already valid token."""

    def __init__(self, client: QuickBooksClient, realm_id: str, access_token: str) -> None:
        self.client = client
        self.realm_id = realm_id
        self.access_token = access_token

    async def fetch(self, period: DateRange) -> ReportDocument:
        payload = await self.client.fetch_profit_and_loss(self.realm_id, self.access_token, period)
        return parse_report(payload)


class DashboardMetricsService:
    """Aggregate current vs. previous period totals and the monthly series."""

    def __init__(
        self,
        tokens: TokenLifecycleManager,
        client: QuickBooksClient,
        *,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.tokens = tokens
        self.client = client
        self.today = today

    async def get_metrics(self, user_id: str, period: str | None) -> DashboardMetrics:
        token = normalize_period(period)
        today = self.today()
        pair = resolve_period(token, today)

        with log_context.scope(user_id=user_id, period=token):
            try:
                realm_id, access_token = await self.tokens.access_token_for(user_id)
            except NotConnectedError:
                LOGGER.info("No linked realm; returning disconnected metrics")
                return DashboardMetrics(connected=False, period=token)

            fetcher = ReportFetcher(self.client, realm_id, access_token)
            with log_context.scope(realm_id=realm_id):
                current_report, previous = await asyncio.gather(
                    fetcher.fetch(pair.current), self._comparator_totals(fetcher, pair.previous)
                )
                current = report_totals(current_report)
                series = await self.monthly_series(fetcher, today) if pair.is_year_scoped else []

        LOGGER.debug("Metrics ready (%s series points)", len(series))
        return DashboardMetrics(
            connected=True,
            period=token,
            range=PeriodRange(**pair.as_dict()),
            revenue=Comparison(current=current.revenue, previous=previous.revenue),
            expenses=Comparison(current=current.expenses, previous=previous.expenses),
            net_profit=Comparison(current=current.net_income, previous=previous.net_income),
            ytd_series=series,
            last_sync_at=datetime.now(timezone.utc).isoformat(),
        )

    async def _comparator_totals(self, fetcher: ReportFetcher, period: DateRange) -> ReportTotals:
        try:
            return report_totals(await fetcher.fetch(period))
        except TransientUpstreamError as exc:
            LOGGER.warning("Comparator period %s..%s unavailable: %s", period.start_iso, period.end_iso, exc)
            return ReportTotals()

    async def monthly_series(self, fetcher: ReportFetcher, today: date) -> list[SeriesPoint]:
        """Fetch every elapsed month of the year concurrently.

        Months whose fetch fails are logged and left out; the rest keep
        calendar order.
        """

        months = elapsed_months(today)
        with timeit("Monthly series", logger=LOGGER, unit="months", total=len(months)):
            results = await asyncio.gather(
                *(fetcher.fetch(month) for month in months), return_exceptions=True
            )

        series: list[SeriesPoint] = []
        for month, result in zip(months, results):
            if isinstance(result, BaseException):
                LOGGER.warning("Skipping %s in monthly series: %s", month.start.strftime("%Y-%m"), result)
                continue
            totals = report_totals(result)
            series.append(
                SeriesPoint(
                    name=MONTH_NAMES[month.start.month - 1],
                    revenue=totals.revenue,
                    expenses=totals.expenses,
                )
            )
        return series
