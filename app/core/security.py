"""Bearer token helpers that identify the calling user."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache

import jwt
from fastapi import Depends, HTTPException, Request, status
from jwt import ExpiredSignatureError, InvalidTokenError

from app.core.config import AuthSettings, get_settings

DEV_USER_HEADER = "X-User-Id"
DEV_USER_ID = "dev-user"


class AuthenticationError(Exception):
    """Raised when authentication or token validation fails."""


@dataclass(frozen=True, slots=True)
class AuthenticatedUser:
    """Representation of the authenticated principal."""

    user_id: str
    email: str | None = None


class SecurityProvider:
    """Verify access tokens issued by the identity provider."""

    def __init__(self, settings: AuthSettings) -> None:
        self._settings = settings

    @property
    def is_enabled(self) -> bool:
        return self._settings.enabled

    def create_access_token(self, user_id: str, *, ttl_minutes: int = 60) -> str:
        """Create a signed JWT; used by scripts and tests."""

        now = datetime.now(tz=timezone.utc)
        payload: dict[str, object] = {
            "sub": user_id,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
        }
        return jwt.encode(payload, self._settings.secret_key, algorithm=self._settings.algorithm)

    def decode_token(self, token: str) -> AuthenticatedUser:
        """Decode a JWT and return the corresponding ``AuthenticatedUser``."""

        try:
            payload = jwt.decode(
                token,
                self._settings.secret_key,
                algorithms=[self._settings.algorithm],
                options={"verify_aud": False},
            )
        except ExpiredSignatureError as exc:
            raise AuthenticationError("Token expired") from exc
        except InvalidTokenError as exc:
            raise AuthenticationError("Invalid token") from exc

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError("Token payload missing subject")
        email = payload.get("email")
        return AuthenticatedUser(user_id=subject, email=email if isinstance(email, str) else None)


@lru_cache(maxsize=1)
def get_security_provider() -> SecurityProvider:
    """Return a cached security provider instance."""

    return SecurityProvider(get_settings().auth)


def get_authenticated_user(
    request: Request,
    security: SecurityProvider = Depends(get_security_provider),
) -> AuthenticatedUser:
    """Resolve the caller from the ``Authorization: Bearer`` header.

    With authentication disabled the ``X-User-Id`` header (or a fixed
    development id) is trusted instead.
    """

    if not security.is_enabled:
        return AuthenticatedUser(user_id=request.headers.get(DEV_USER_HEADER) or DEV_USER_ID)

    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="no_authorization")
    try:
        return security.decode_token(token.strip())
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized") from exc


__all__ = [
    "AuthenticatedUser",
    "AuthenticationError",
    "SecurityProvider",
    "get_authenticated_user",
    "get_security_provider",
]
