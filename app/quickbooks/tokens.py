"""Credential persistence and access-token refresh for linked realms."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.core.logger import get_logger, log_context
from app.models import Profile, QboToken, as_utc

from .client import QuickBooksClient, TokenGrant
from .exceptions import NotConnectedError, ReauthRequiredError

LOGGER = get_logger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialStore:
    """Read and write ``profile`` and ``qbo_token`` rows through one session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def realm_for_user(self, user_id: str) -> Optional[str]:
        profile = self.session.get(Profile, user_id)
        return profile.qbo_realm_id if profile and profile.qbo_realm_id else None

    def get(self, user_id: str, realm_id: str) -> Optional[QboToken]:
        stmt = select(QboToken).where(QboToken.user_id == user_id, QboToken.realm_id == realm_id)
        return self.session.execute(stmt).scalars().first()

    def save_grant(self, record: QboToken, grant: TokenGrant, now: datetime) -> QboToken:
        record.access_token = grant.access_token
        record.access_expires_at = now + timedelta(seconds=grant.expires_in)
        # The identity service may rotate the refresh token; keep the old one otherwise.
        if grant.refresh_token:
            record.refresh_token = grant.refresh_token
        if grant.refresh_expires_in:
            record.refresh_expires_at = now + timedelta(seconds=grant.refresh_expires_in)
        if grant.token_type:
            record.token_type = grant.token_type
        if grant.scope:
            record.scope = grant.scope
        record.updated_at = now
        self.session.add(record)
        self.session.commit()
        return record

    def delete(self, user_id: str, realm_id: str) -> None:
        self.session.execute(
            delete(QboToken).where(QboToken.user_id == user_id, QboToken.realm_id == realm_id)
        )
        self.session.commit()


class TokenLifecycleManager:
    """Hand out a usable access token, refreshing it shortly before expiry.

    Two requests refreshing the same credential at once both hit the identity
    service and both persist; the later write wins.
    """

    def __init__(
        self,
        store: CredentialStore,
        client: QuickBooksClient,
        *,
        margin_seconds: int = 60,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.client = client
        self.margin = timedelta(seconds=margin_seconds)
        self.clock = clock

    def load_credential(self, user_id: str, realm_id: Optional[str] = None) -> QboToken:
        """Return the stored credential for the user's realm.

        Without an explicit ``realm_id`` the realm linked on the user's profile
        is used. Raises ``NotConnectedError`` when either is missing.
        """

        realm_id = realm_id or self.store.realm_for_user(user_id)
        if not realm_id:
            raise NotConnectedError("No realm linked for user")
        record = self.store.get(user_id, realm_id)
        if record is None:
            raise NotConnectedError("No stored credential for realm", realm_id=realm_id)
        return record

    def needs_refresh(self, record: QboToken) -> bool:
        expires_at = as_utc(record.access_expires_at)
        if expires_at is None or not record.access_token:
            return True
        return expires_at - self.clock() <= self.margin

    async def ensure_valid_access_token(self, record: QboToken) -> str:
        """Return an access token that stays valid for at least the margin.

        Raises:
            ReauthRequiredError: no refresh token on file, or it was rejected as
                ``invalid_grant``. The credential row is deleted first.
            TransientUpstreamError: the identity service could not be reached or
                answered with another failure; the row is left as it was.
        """

        if not self.needs_refresh(record):
            return record.access_token

        user_id, realm_id = record.user_id, record.realm_id
        with log_context.scope(user_id=user_id, realm_id=realm_id):
            if not record.refresh_token:
                LOGGER.warning("Credential has no refresh token; removing it")
                self.store.delete(user_id, realm_id)
                raise ReauthRequiredError("No refresh token on file", realm_id=realm_id)

            try:
                grant = await self.client.refresh_access_token(record.refresh_token)
            except ReauthRequiredError:
                LOGGER.warning("Refresh token rejected; removing credential")
                self.store.delete(user_id, realm_id)
                raise ReauthRequiredError(
                    "QuickBooks authorization expired", realm_id=realm_id
                ) from None

            self.store.save_grant(record, grant, self.clock())
            LOGGER.info("Access token refreshed (expires in %ss)", grant.expires_in)
            return grant.access_token

    async def access_token_for(self, user_id: str, realm_id: Optional[str] = None) -> tuple[str, str]:
        """Load the credential and return ``(realm_id, access_token)``."""

        record = self.load_credential(user_id, realm_id)
        return record.realm_id, await self.ensure_valid_access_token(record)
