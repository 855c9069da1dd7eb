"""Accounting API integration: HTTP client, credential lifecycle and errors."""

from .client import QuickBooksClient, TokenGrant
from .exceptions import (
    NotConnectedError,
    QuickBooksAPIError,
    QuickBooksError,
    ReauthRequiredError,
    TransientUpstreamError,
)
from .tokens import CredentialStore, TokenLifecycleManager

__all__ = [
    "CredentialStore",
    "NotConnectedError",
    "QuickBooksAPIError",
    "QuickBooksClient",
    "QuickBooksError",
    "ReauthRequiredError",
    "TokenGrant",
    "TokenLifecycleManager",
    "TransientUpstreamError",
]
