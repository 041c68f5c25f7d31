from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.badge_catalog import load_badge_catalog  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.services.badge_service import backfill_user_badges  # noqa: E402
from app.store.sqlite_store import SqliteEngineStore  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Award missing badges to every user with points.")
    parser.add_argument("--db", default=settings.engine_db_path, help="Engine sqlite database path")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.badge_backfill_batch_size,
        help="Users evaluated per batch",
    )
    parser.add_argument(
        "--delay-ms",
        type=int,
        default=settings.badge_backfill_delay_ms,
        help="Pause between batches in milliseconds",
    )
    parser.add_argument(
        "--seed-catalog",
        action="store_true",
        help="Insert missing catalog badges from the badge YAML before evaluating.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    store = SqliteEngineStore(args.db)
    try:
        if args.seed_catalog:
            store.seed_badges(load_badge_catalog())
        report = backfill_user_badges(store, batch_size=args.batch_size, delay_s=max(0, args.delay_ms) / 1000)
    finally:
        store.close()

    print(
        f"processed={report.users_processed} failed={report.users_failed} awarded={report.badges_awarded}"
    )
    if report.users_failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
