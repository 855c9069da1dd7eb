"""Database models for the ledger dashboard."""
from __future__ import annotations

from .audit import QueryLog
from .base import Base
from .credentials import Profile, QboToken, as_utc
from .snapshots import MonthlySnapshot

__all__ = [
    "Base",
    "MonthlySnapshot",
    "Profile",
    "QboToken",
    "QueryLog",
    "as_utc",
]
