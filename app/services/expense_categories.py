"""Service producing per-account expense totals for the category panel."""
from __future__ import annotations

from datetime import date
from typing import Callable

from app.core.logger import get_logger, log_context
from app.quickbooks import NotConnectedError, QuickBooksClient, TokenLifecycleManager
from app.reporting import aggregate, merge_categories, resolve_period
from app.schemas.dashboard import CategoryEntry, Comparison, ExpenseCategories, PeriodRange
from app.services.dashboard_metrics import ReportFetcher, normalize_period

LOGGER = get_logger(__name__)


class ExpenseCategoryService:
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

    async def get_categories(self, user_id: str, period: str | None) -> ExpenseCategories:
        """Merge the period's expense accounts with its comparator's.

        Both reports are required; a failure on either side propagates.
        """

        token = normalize_period(period)
        pair = resolve_period(token, self.today())

        with log_context.scope(user_id=user_id, period=token):
            try:
                realm_id, access_token = await self.tokens.access_token_for(user_id)
            except NotConnectedError:
                return ExpenseCategories(connected=False, period=token)

            fetcher = ReportFetcher(self.client, realm_id, access_token)
            current_report = await fetcher.fetch(pair.current)
            previous_report = await fetcher.fetch(pair.previous)

            current = aggregate(current_report)
            previous = aggregate(previous_report)
            merged = merge_categories(current, previous)
            LOGGER.debug("Merged %s expense accounts", len(merged))

        return ExpenseCategories(
            connected=True,
            period=token,
            range=PeriodRange(**pair.as_dict()),
            total=Comparison(current=current.grand_total, previous=previous.grand_total),
            categories=[
                CategoryEntry(
                    name=item.name,
                    account_id=item.account_id,
                    current=item.current,
                    previous=item.previous,
                    share=item.share,
                )
                for item in merged
            ],
            last_sync_at=current_report.generated_at,
        )
