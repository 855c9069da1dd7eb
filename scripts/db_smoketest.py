"""Database connectivity check that also reports which ledger tables exist."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from sqlalchemy import func, inspect, select, text

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.config import get_settings  # noqa: E402  (import after sys.path manipulation)
from app.core.logger import get_logger, init_logging  # noqa: E402
from app.db.engine import create_sync_engine  # noqa: E402
from app.models import Base, MonthlySnapshot  # noqa: E402

logger = get_logger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    settings = get_settings()
    engine = create_sync_engine()

    if args.create_tables:
        Base.metadata.create_all(engine)

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
        existing = set(inspect(conn).get_table_names())
        missing = sorted(set(Base.metadata.tables) - existing)
        logger.info(
            "Connected via %s to %s:%s/%s",
            settings.database.driver,
            settings.database.host,
            settings.database.port,
            settings.database.name,
        )
        if missing:
            logger.warning("Missing tables: %s (run with --create-tables)", ", ".join(missing))
            return 1

        total, embedded = conn.execute(
            select(func.count(MonthlySnapshot.id), func.count(MonthlySnapshot.embedding))
        ).one()
        logger.info("monthly_snapshot rows=%s embedded=%s", total, embedded)
    return 0


if __name__ == "__main__":
    init_logging(app_name="db-smoketest")
    sys.exit(main())
