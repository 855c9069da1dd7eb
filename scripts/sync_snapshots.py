#!/usr/bin/env python3
"""Build monthly P&L snapshots for a user's linked realm."""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.ai_chatbot.llm_providers import EmbeddingClient
from app.core.config import get_settings
from app.core.logger import get_logger, init_logging, progress_manager
from app.db.session import session_scope
from app.models import Base
from app.quickbooks import (
    CredentialStore,
    NotConnectedError,
    QuickBooksClient,
    QuickBooksError,
    TokenLifecycleManager,
)
from app.services.snapshot_sync import SnapshotSyncService

logger = get_logger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("user_id", help="User whose linked realm is synced")
    parser.add_argument("--months", type=int, default=12, help="Number of months to sync, ending with the current month")
    parser.add_argument("--no-embeddings", action="store_true", help="Skip computing snapshot embeddings")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables before syncing")
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    embedder = None
    if not args.no_embeddings:
        try:
            embedder = EmbeddingClient(settings.llm)
        except ValueError as exc:
            logger.warning("Embeddings disabled: %s", exc)

    with session_scope() as session:
        if args.create_tables:
            Base.metadata.create_all(session.get_bind())
        async with QuickBooksClient(settings.quickbooks) as client:
            tokens = TokenLifecycleManager(
                CredentialStore(session),
                client,
                margin_seconds=settings.quickbooks.refresh_margin_seconds,
            )
            service = SnapshotSyncService(session, tokens, client, embedder=embedder)
            with progress_manager.task("Syncing snapshots", total=args.months) as task:

                def advance(label: str) -> None:
                    task.describe(f"Synced {label}")
                    task.advance()

                try:
                    result = await service.sync(args.user_id, months=args.months, on_month=advance)
                except NotConnectedError:
                    logger.error("User %s has no linked realm", args.user_id)
                    return 1
                except QuickBooksError as exc:
                    logger.error("Sync aborted: %s", exc)
                    return 1

    return 0 if result.failed == 0 else 2


def main() -> None:
    args = parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    init_logging(app_name="snapshot-sync")
    main()
