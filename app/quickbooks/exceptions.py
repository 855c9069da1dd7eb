"""Errors raised while talking to the accounting API and its identity service."""
from __future__ import annotations

from typing import Optional


class QuickBooksError(Exception):
    """Base class for accounting integration failures."""

    def __init__(self, message: str, *, realm_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.realm_id = realm_id


class NotConnectedError(QuickBooksError):
    """The user has not linked a realm, or no credential is stored for it."""


class ReauthRequiredError(QuickBooksError):
    """The stored refresh token was rejected; the user must reconnect."""

    code = "qbo_reauth_required"


class TransientUpstreamError(QuickBooksError):
    """Network failure or unexpected status; the credential was left untouched."""

    code = "upstream_unavailable"

    def __init__(
        self,
        message: str,
        *,
        realm_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, realm_id=realm_id)
        self.status_code = status_code


class QuickBooksAPIError(TransientUpstreamError):
    """The accounting API answered a data request with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        realm_id: Optional[str] = None,
        status_code: Optional[int] = None,
        body: str = "",
    ) -> None:
        super().__init__(message, realm_id=realm_id, status_code=status_code)
        self.body = body
