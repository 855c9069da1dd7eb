"""Duration logging for upstream calls and batch jobs."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from time import perf_counter
from typing import Iterator, Optional

_DEFAULT_LOGGER = "ledger.timer"


def _describe(label: str, outcome: str, elapsed: float, total: Optional[int], unit: str) -> str:
    suffix = f" ({total:,} {unit})" if total is not None else ""
    return f"{label} {outcome} {elapsed:.2f}s{suffix}"


@contextmanager
def timeit(
    label: str,
    *,
    logger: Optional[logging.Logger] = None,
    level: int = logging.INFO,
    unit: str = "items",
    total: Optional[int] = None,
) -> Iterator[None]:
    """Log how long the block took; failures are logged at WARNING and re-raised.

    ``total`` is the number of ``unit`` handled by the block, e.g. the months of
    a sync or the requests of a token refresh.
    """
    log = logger or logging.getLogger(_DEFAULT_LOGGER)
    started = perf_counter()
    try:
        yield
    except Exception:
        log.warning(_describe(label, "failed after", perf_counter() - started, total, unit))
        raise
    log.log(level, _describe(label, "completed in", perf_counter() - started, total, unit))
