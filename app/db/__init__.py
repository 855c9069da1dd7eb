"""Engine and session factories for the ledger database."""

from .engine import create_sync_engine
from .session import get_session_factory, session_scope

__all__ = ["create_sync_engine", "get_session_factory", "session_scope"]
