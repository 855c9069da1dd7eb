"""Engine construction from the configured database settings."""
from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url

from app.core.config import Settings, get_settings
from app.core.logger import get_logger

LOGGER = get_logger(__name__)


def create_sync_engine(
    url: str | None = None,
    *,
    settings: Settings | None = None,
    **kwargs,
) -> Engine:
    """Build an engine for ``url`` or the configured database.

    MySQL connections are pinged before checkout because the server drops idle
    connections between snapshot syncs.
    """

    settings = settings or get_settings()
    target = make_url(url or settings.database.sqlalchemy_url)

    kwargs.setdefault("echo", settings.sqlalchemy_echo)
    if target.get_backend_name() != "sqlite":
        kwargs.setdefault("pool_pre_ping", True)

    LOGGER.debug("Opening engine for %s", target.render_as_string(hide_password=True))
    return create_engine(target, **kwargs)
