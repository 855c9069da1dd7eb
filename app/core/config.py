"""Process-wide configuration assembled once from environment variables."""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os
from pathlib import Path

from dotenv import load_dotenv

from app.ai_chatbot.config import LLMProviderConfig, QueryPlannerConfig

load_dotenv(dotenv_path=Path(__file__).resolve().parents[2] / ".env")

DEFAULT_QBO_API_BASE = "https://quickbooks.api.intuit.com"
DEFAULT_QBO_TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
REFRESH_MARGIN_BOUNDS = (60, 120)


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default)


def _flag(name: str, default: str) -> bool:
    return _env(name, default) not in {"0", "false", "False", ""}


@dataclass(slots=True)
class DatabaseSettings:
    """Where bookkeeping tables live. ``DATABASE_URL`` wins over the DB_* parts."""

    driver: str
    host: str
    port: int
    user: str
    password: str
    name: str
    url_override: str = ""

    @classmethod
    def from_env(cls) -> "DatabaseSettings":
        return cls(
            driver=_env("DB_DRIVER", "mysql+pymysql"),
            host=_env("DB_HOST", "127.0.0.1"),
            port=int(_env("DB_PORT", "3306")),
            user=_env("DB_USER", "ledger"),
            password=_env("DB_PASSWORD", "ledger"),
            name=_env("DB_NAME", "ledger"),
            url_override=_env("DATABASE_URL"),
        )

    @property
    def sqlalchemy_url(self) -> str:
        if self.url_override:
            return self.url_override
        login = f"{self.user}:{self.password}" if self.password else self.user
        return f"{self.driver}://{login}@{self.host}:{self.port}/{self.name}"


@dataclass(slots=True)
class AuthSettings:
    """Bearer token verification settings.

    Sessions are issued by the external identity provider; this service only
    decodes the token to learn the caller's user id.
    """

    secret_key: str
    algorithm: str
    enabled: bool = True

    @classmethod
    def from_env(cls) -> "AuthSettings":
        return cls(
            secret_key=_env("JWT_SECRET_KEY", "change-me"),
            algorithm=_env("JWT_ALGORITHM", "HS256"),
            enabled=_flag("AUTH_ENABLED", "1"),
        )


@dataclass(slots=True)
class QuickBooksSettings:
    """Accounting API and identity service endpoints plus client credentials."""

    client_id: str
    client_secret: str
    api_base: str = DEFAULT_QBO_API_BASE
    token_url: str = DEFAULT_QBO_TOKEN_URL
    minor_version: str = "70"
    accounting_method: str = "Accrual"
    refresh_margin_seconds: int = 60
    timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "QuickBooksSettings":
        margin = int(_env("QBO_REFRESH_MARGIN_SECONDS", "60"))
        low, high = REFRESH_MARGIN_BOUNDS
        if not low <= margin <= high:
            raise ValueError(f"QBO_REFRESH_MARGIN_SECONDS must be between {low} and {high}.")
        return cls(
            client_id=_env("QBO_CLIENT_ID"),
            client_secret=_env("QBO_CLIENT_SECRET"),
            api_base=_env("QBO_API_BASE", DEFAULT_QBO_API_BASE).rstrip("/"),
            token_url=_env("QBO_TOKEN_URL", DEFAULT_QBO_TOKEN_URL),
            minor_version=_env("QBO_MINOR_VERSION", "70"),
            accounting_method=_env("QBO_ACCOUNTING_METHOD", "Accrual"),
            refresh_margin_seconds=margin,
            timeout_seconds=float(_env("QBO_TIMEOUT_SECONDS", "30")),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(slots=True)
class Settings:
    database: DatabaseSettings
    auth: AuthSettings
    quickbooks: QuickBooksSettings
    llm: LLMProviderConfig
    planner: QueryPlannerConfig
    sqlalchemy_echo: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database=DatabaseSettings.from_env(),
            auth=AuthSettings.from_env(),
            quickbooks=QuickBooksSettings.from_env(),
            llm=LLMProviderConfig.from_env(),
            planner=QueryPlannerConfig.from_env(),
            sqlalchemy_echo=_flag("SQLALCHEMY_ECHO", "0"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached settings, logging a redacted summary the first time."""

    settings = Settings.from_env()

    # Deferred: the logging package is configured lazily and must not load during settings import.
    from .logger import get_logger

    get_logger(__name__).debug(
        "Settings loaded: db=%s@%s:%s/%s qbo=%s configured=%s margin=%ss llm=%s auth=%s",
        settings.database.driver,
        settings.database.host,
        settings.database.port,
        settings.database.name,
        settings.quickbooks.api_base,
        settings.quickbooks.is_configured,
        settings.quickbooks.refresh_margin_seconds,
        settings.llm.default_provider,
        settings.auth.enabled,
    )
    return settings
