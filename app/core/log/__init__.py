"""Process-wide logging: rich console output, a daily file and request context."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from queue import SimpleQueue
from threading import RLock
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install as install_rich_traceback

from .context import ContextFilter, log_context
from .progress import progress_manager
from .timing import timeit

__all__ = [
    "LoggingConfig",
    "init_logging",
    "get_logger",
    "log_context",
    "progress_manager",
    "timeit",
]

# Third-party loggers that are chatty at INFO (every outbound request, every access line).
QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}
# Loggers that install their own handlers; they are routed through ours instead.
ADOPTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(context)s%(message)s"


def _env_log_dir() -> Optional[Path]:
    """``LOG_DIR`` overrides the directory; an empty value disables file logging."""

    raw = os.environ.get("LOG_DIR")
    if raw is None:
        return Path("logs")
    return Path(raw) if raw.strip() else None


@dataclass
class LoggingConfig:
    """Runtime configuration for the logging subsystem."""

    app_name: str = "ledger"
    level: str | int = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))
    log_dir: Optional[Path] = field(default_factory=_env_log_dir)
    retention_days: int = 14
    console: bool = True
    rich_tracebacks: bool = True
    queue: bool = True


_lock = RLock()
_active: LoggingConfig | None = None
_listener: QueueListener | None = None
_context_filter = ContextFilter()


def _level(value: str | int) -> int:
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(str(value).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _console_handler(cfg: LoggingConfig, level: int) -> logging.Handler:
    console = Console()
    progress_manager.use_console(console)
    handler = RichHandler(
        console=console,
        rich_tracebacks=cfg.rich_tracebacks,
        show_path=False,
        markup=False,
        log_time_format="%Y-%m-%d %H:%M:%S",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(context)s%(message)s"))
    return handler


def _file_handler(cfg: LoggingConfig, level: int) -> logging.Handler:
    directory = Path(cfg.log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        directory / f"{cfg.app_name}.log",
        when="midnight",
        backupCount=cfg.retention_days,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _adopt_library_loggers() -> None:
    for name in ADOPTED_LOGGERS:
        library_logger = logging.getLogger(name)
        library_logger.handlers.clear()
        library_logger.propagate = True
    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def _stop_locked() -> None:
    global _active, _listener
    if _listener is not None:
        _listener.stop()
    _listener = None
    _active = None
    progress_manager.reset_console()
    logging.getLogger().handlers.clear()


def init_logging(**overrides: object) -> None:
    """Configure the root logger once per process.

    Calling again with the same options is a no-op; different options replace
    the previous handlers. Unknown keyword arguments are ignored.
    """

    global _active, _listener

    cfg = LoggingConfig()
    for key, value in overrides.items():
        if hasattr(cfg, key):
            setattr(cfg, key, value)

    with _lock:
        if _active == cfg:
            return
        if _active is not None:
            _stop_locked()

        level = _level(cfg.level)
        if cfg.rich_tracebacks:
            install_rich_traceback(show_locals=False)

        handlers: list[logging.Handler] = []
        if cfg.console:
            handlers.append(_console_handler(cfg, level))
        if cfg.log_dir:
            handlers.append(_file_handler(cfg, level))
        for handler in handlers:
            handler.addFilter(_context_filter)

        root = logging.getLogger()
        root.handlers.clear()
        root.setLevel(level)
        if cfg.queue and handlers:
            # Context is resolved on the calling thread before the record is queued.
            queue_handler = QueueHandler(SimpleQueue())
            queue_handler.addFilter(_context_filter)
            root.addHandler(queue_handler)
            _listener = QueueListener(queue_handler.queue, *handlers, respect_handler_level=True)
            _listener.start()
        else:
            for handler in handlers:
                root.addHandler(handler)

        _adopt_library_loggers()
        _active = cfg


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a named logger, configuring logging with defaults on first use."""

    with _lock:
        if _active is None:
            init_logging()
        app_name = _active.app_name if _active else LoggingConfig.app_name
    return logging.getLogger(name or app_name)
