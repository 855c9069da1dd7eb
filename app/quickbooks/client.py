"""Thin async HTTP client for the accounting API and its OAuth identity service."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from app.core.config import QuickBooksSettings
from app.core.logger import get_logger, timeit
from app.reporting.periods import DateRange

from .exceptions import QuickBooksAPIError, ReauthRequiredError, TransientUpstreamError

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class TokenGrant:
    """Successful response of a ``grant_type=refresh_token`` exchange."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: int
    refresh_expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "TokenGrant":
        refresh_expires = data.get("x_refresh_token_expires_in")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            expires_in=int(data.get("expires_in") or 3600),
            refresh_expires_in=int(refresh_expires) if refresh_expires else None,
            token_type=data.get("token_type"),
            scope=data.get("scope"),
        )


class QuickBooksClient:
    """Issue report, company and token requests.

    The client never touches persistence; :class:`~app.quickbooks.tokens.TokenLifecycleManager`
    owns the stored credential.
    """

    def __init__(
        self,
        settings: QuickBooksSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.timeout_seconds)

    async def __aenter__(self) -> "QuickBooksClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and not self._http.is_closed:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Identity service
    # ------------------------------------------------------------------

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Exchange a refresh token for a new access token.

        Raises ``ReauthRequiredError`` when the identity service answers 400
        with ``invalid_grant`` and ``TransientUpstreamError`` for anything
        else that is not a success.
        """

        try:
            with timeit("Token refresh", logger=LOGGER, unit="requests", total=1):
                response = await self._http.post(
                    self.settings.token_url,
                    data={"grant_type": "refresh_token", "refresh_token": refresh_token},
                    auth=(self.settings.client_id, self.settings.client_secret),
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise TransientUpstreamError(f"Token refresh request failed: {exc}") from exc

        if response.status_code == 400 and "invalid_grant" in response.text:
            raise ReauthRequiredError("Refresh token was rejected as invalid_grant")
        if not response.is_success:
            raise TransientUpstreamError(
                f"Token refresh failed with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return TokenGrant.from_response(response.json())
        except (ValueError, KeyError) as exc:
            raise TransientUpstreamError("Token refresh returned an unreadable body") from exc

    # ------------------------------------------------------------------
    # Accounting API
    # ------------------------------------------------------------------

    async def fetch_profit_and_loss(
        self, realm_id: str, access_token: str, period: DateRange
    ) -> dict[str, Any]:
        """Fetch the Profit & Loss report for an inclusive date range."""

        params = {
            "start_date": period.start_iso,
            "end_date": period.end_iso,
            "accounting_method": self.settings.accounting_method,
            "minorversion": self.settings.minor_version,
        }
        return await self._get(realm_id, access_token, "reports/ProfitAndLoss", params)

    async def fetch_company_info(self, realm_id: str, access_token: str) -> dict[str, Any]:
        payload = await self._get(
            realm_id,
            access_token,
            f"companyinfo/{realm_id}",
            {"minorversion": self.settings.minor_version},
        )
        return payload.get("CompanyInfo") or {}

    async def _get(
        self,
        realm_id: str,
        access_token: str,
        endpoint: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        url = f"{self.settings.api_base}/v3/company/{realm_id}/{endpoint}"
        headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
        try:
            with timeit(f"GET {endpoint}", logger=LOGGER, level=logging.DEBUG):
                response = await self._http.get(url, headers=headers, params=params)
        except httpx.HTTPError as exc:
            raise TransientUpstreamError(
                f"Accounting API request failed: {exc}", realm_id=realm_id
            ) from exc

        if not response.is_success:
            LOGGER.warning(
                "Accounting API returned %s for %s", response.status_code, endpoint
            )
            raise QuickBooksAPIError(
                f"Accounting API error {response.status_code} for {endpoint}",
                realm_id=realm_id,
                status_code=response.status_code,
                body=response.text[:500],
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransientUpstreamError(
                f"Accounting API returned an unreadable body for {endpoint}", realm_id=realm_id
            ) from exc
        if not isinstance(payload, dict):
            raise TransientUpstreamError(
                f"Accounting API returned a non-object body for {endpoint}", realm_id=realm_id
            )
        return payload
