"""Application package for the ledger dashboard backend."""

from .core import get_logger, get_settings

__all__ = ["get_logger", "get_settings"]
