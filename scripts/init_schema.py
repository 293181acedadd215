"""
CLI helper to apply the relational schema (users, projects, pdfs).

Safe to run repeatedly: existing tables are left alone.
"""

from __future__ import annotations

import argparse
import logging
import sys

from takeoff_backend.config import get_settings
from takeoff_backend.db import Database

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Apply the takeoff database schema")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override DATABASE_URL",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    settings = get_settings()
    if args.database_url:
        settings = settings.model_copy(update={"database_url": args.database_url})
    if not settings.database_url:
        logger.error("DATABASE_URL is not set and --database-url was not given")
        return 1
    if settings.use_in_memory_backends:
        logger.error(
            "USE_IN_MEMORY_BACKENDS is set, refusing to apply the schema "
            "to a throwaway database"
        )
        return 1

    db = Database.from_settings(settings)
    try:
        db.init_schema()
    finally:
        db.dispose()
    logger.info("Database schema is up to date")
    return 0


if __name__ == "__main__":
    sys.exit(main())
