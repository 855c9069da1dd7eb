"""Shared FastAPI dependency definitions."""
from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from app.ai_chatbot.llm_providers import EmbeddingClient, LLMProvider, LLMProviderFactory
from app.core.config import Settings, get_settings
from app.core.logger import get_logger
from app.db.session import get_session_factory
from app.quickbooks import CredentialStore, QuickBooksClient, TokenLifecycleManager

LOGGER = get_logger(__name__)


def get_app_settings() -> Settings:
    return get_settings()


def get_db_sessionmaker() -> sessionmaker:
    """Return the process-wide session factory (overridden in tests)."""

    return get_session_factory()


def get_db_session(
    factory: sessionmaker = Depends(get_db_sessionmaker),
) -> Generator[Session, None, None]:
    """Yield a database session suitable for request-scoped usage."""

    session = factory()
    try:
        yield session
    finally:
        session.close()


async def get_quickbooks_client(
    settings: Settings = Depends(get_app_settings),
) -> AsyncGenerator[QuickBooksClient, None]:
    client = QuickBooksClient(settings.quickbooks)
    try:
        yield client
    finally:
        await client.aclose()


def get_token_manager(
    session: Session = Depends(get_db_session),
    client: QuickBooksClient = Depends(get_quickbooks_client),
    settings: Settings = Depends(get_app_settings),
) -> TokenLifecycleManager:
    return TokenLifecycleManager(
        CredentialStore(session),
        client,
        margin_seconds=settings.quickbooks.refresh_margin_seconds,
    )


def get_llm_provider(settings: Settings = Depends(get_app_settings)) -> Optional[LLMProvider]:
    """Return the configured provider, or ``None`` when no API key is set."""

    try:
        return LLMProviderFactory.create(None, settings.llm)
    except ValueError as exc:
        LOGGER.warning("LLM provider unavailable: %s", exc)
        return None


def get_embedder(settings: Settings = Depends(get_app_settings)) -> Optional[EmbeddingClient]:
    try:
        return EmbeddingClient(settings.llm)
    except ValueError as exc:
        LOGGER.debug("Embeddings unavailable: %s", exc)
        return None
