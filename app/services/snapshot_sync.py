"""Build the per-month snapshots that natural-language questions are answered from."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.ai_chatbot.llm_providers import EmbeddingClient, LLMProviderError
from app.core.logger import get_logger, log_context, timeit
from app.models import MonthlySnapshot
from app.quickbooks import QuickBooksClient, TokenLifecycleManager, TransientUpstreamError
from app.reporting import ReportDocument, aggregate, parse_report, report_totals
from app.reporting.periods import DateRange, month_range, shift_month

LOGGER = get_logger(__name__)


def build_snapshot_data(report: ReportDocument) -> dict[str, Any]:
    """Summarise one month's report as the JSON stored on ``monthly_snapshot.data``."""

    totals = report_totals(report)
    breakdown = aggregate(report)
    by_account: dict[str, float] = {}
    for entry in breakdown.categories.values():
        by_account[entry.name] = by_account.get(entry.name, 0.0) + float(entry.amount)
    return {
        "revenue": {"total": float(totals.revenue)},
        "expenses": {"total": float(totals.expenses), "by_account": by_account},
        "net_income": float(totals.net_income),
    }


def render_snapshot_text(year: int, month: int, data: dict[str, Any]) -> str:
    """Plain-text rendering of a snapshot used as embedding input."""

    lines = [
        f"Profit and loss for {year:04d}-{month:02d}",
        f"Revenue: {data.get('revenue', {}).get('total', 0):.2f}",
        f"Expenses: {data.get('expenses', {}).get('total', 0):.2f}",
        f"Net income: {data.get('net_income', 0):.2f}",
    ]
    by_account = data.get("expenses", {}).get("by_account", {})
    for name, amount in sorted(by_account.items(), key=lambda item: item[1], reverse=True):
        lines.append(f"Expense {name}: {amount:.2f}")
    return "\n".join(lines)


@dataclass
class SyncResult:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


def is_final(snapshot: MonthlySnapshot) -> bool:
    """True once the stored figures cover the whole calendar month."""

    month_end = month_range(snapshot.year, snapshot.month).end
    if snapshot.through_date is not None:
        return snapshot.through_date >= month_end
    # Rows written without a coverage date count as final once touched after month end.
    return snapshot.updated_at is not None and snapshot.updated_at.date() > month_end


class SnapshotSyncService:
    """Write one snapshot per month for a user's linked realm.

    Closed months whose snapshot covers the whole month are left alone. The
    running month is always rebuilt, and a month last synced while it was still
    running is rebuilt once after it closes.
    """

    def __init__(
        self,
        session: Session,
        tokens: TokenLifecycleManager,
        client: QuickBooksClient,
        *,
        embedder: Optional[EmbeddingClient] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session = session
        self.tokens = tokens
        self.client = client
        self.embedder = embedder
        self.today = today

    def months_to_sync(self, count: int, today: Optional[date] = None) -> list[tuple[int, int]]:
        today = today or self.today()
        return [shift_month(today.year, today.month, -offset) for offset in range(count - 1, -1, -1)]

    async def sync(
        self,
        user_id: str,
        *,
        months: int = 12,
        on_month: Optional[Callable[[str], None]] = None,
    ) -> SyncResult:
        realm_id, access_token = await self.tokens.access_token_for(user_id)
        today = self.today()
        result = SyncResult()

        with log_context.scope(user_id=user_id, realm_id=realm_id), timeit(
            "Snapshot sync", logger=LOGGER, unit="months", total=months
        ):
            for year, month in self.months_to_sync(months, today):
                label = f"{year:04d}-{month:02d}"
                existing = self._existing(realm_id, year, month)
                closed = (year, month) < (today.year, today.month)
                if existing is not None and closed and is_final(existing):
                    result.skipped += 1
                elif await self._sync_month(realm_id, access_token, year, month, existing, today):
                    if existing is None:
                        result.created += 1
                    else:
                        result.updated += 1
                else:
                    result.failed += 1
                if on_month is not None:
                    on_month(label)

        LOGGER.info(
            "Snapshots created=%s updated=%s skipped=%s failed=%s",
            result.created,
            result.updated,
            result.skipped,
            result.failed,
        )
        return result

    def _existing(self, realm_id: str, year: int, month: int) -> Optional[MonthlySnapshot]:
        stmt = select(MonthlySnapshot).where(
            MonthlySnapshot.realm_id == realm_id,
            MonthlySnapshot.year == year,
            MonthlySnapshot.month == month,
        )
        return self.session.execute(stmt).scalars().first()

    async def _sync_month(
        self,
        realm_id: str,
        access_token: str,
        year: int,
        month: int,
        existing: Optional[MonthlySnapshot],
        today: date,
    ) -> bool:
        full = month_range(year, month)
        period = DateRange(full.start, min(full.end, today))
        try:
            payload = await self.client.fetch_profit_and_loss(realm_id, access_token, period)
        except TransientUpstreamError as exc:
            LOGGER.warning("Report for %04d-%02d unavailable: %s", year, month, exc)
            return False

        data = build_snapshot_data(parse_report(payload))
        embedding = await self._embed(year, month, data)

        snapshot = existing or MonthlySnapshot(realm_id=realm_id, year=year, month=month)
        snapshot.data = data
        snapshot.through_date = period.end
        if embedding is not None or existing is None:
            snapshot.embedding = embedding
        self.session.add(snapshot)
        self.session.commit()
        return True

    async def _embed(self, year: int, month: int, data: dict[str, Any]) -> Optional[list[float]]:
        if self.embedder is None:
            return None
        try:
            return await self.embedder.embed(render_snapshot_text(year, month, data))
        except LLMProviderError as exc:
            LOGGER.warning("Embedding for %04d-%02d failed: %s", year, month, exc)
            return None
