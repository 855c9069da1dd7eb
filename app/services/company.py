"""Service returning the display name of the user's linked company."""
from __future__ import annotations

from typing import Optional

from app.core.logger import get_logger, log_context
from app.quickbooks import NotConnectedError, QuickBooksClient, TokenLifecycleManager
from app.schemas.dashboard import CompanyInfo

LOGGER = get_logger(__name__)

# Company lookups refresh a little earlier than report calls.
COMPANY_REFRESH_MARGIN_SECONDS = 120


class CompanyService:
    def __init__(self, tokens: TokenLifecycleManager, client: QuickBooksClient) -> None:
        self.tokens = tokens
        self.client = client

    async def get_company(self, user_id: str, realm_id: Optional[str] = None) -> CompanyInfo:
        with log_context.scope(user_id=user_id, realm_id=realm_id):
            try:
                realm_id, access_token = await self.tokens.access_token_for(user_id, realm_id)
            except NotConnectedError:
                return CompanyInfo(connected=False, realm_id=realm_id)

            info = await self.client.fetch_company_info(realm_id, access_token)
            name = info.get("CompanyName") or info.get("LegalName")
            if not name:
                LOGGER.info("Company info for realm carried no name")
        return CompanyInfo(connected=True, company_name=name, realm_id=realm_id)
