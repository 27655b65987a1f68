#!/usr/bin/env python3
"""
Check the Supabase connection and which advisor/context tables exist.
"""

import sys
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from loguru import logger
from infrastructure import config
from infrastructure.log import setup_logging
from infrastructure.db import OWNED_TABLES, check_read_tables, test_connection


def main():
    setup_logging()

    try:
        config.validate()
    except ValueError as e:
        logger.error(str(e))
        return 1
    config.dump()

    logger.info("Testing database connection…")
    if not test_connection():
        return 1

    logger.info("Checking tables…")
    status = check_read_tables()

    missing_owned = [t for t in OWNED_TABLES if not status.get(t)]
    missing_context = [t for t, ok in status.items() if not ok and t not in OWNED_TABLES]

    if missing_owned:
        logger.error(f"Advisor tables missing: {', '.join(missing_owned)}")
        logger.info("Run: python scripts/init_advisor_schema.py")
        return 1
    if missing_context:
        logger.warning(
            f"Context tables missing ({', '.join(missing_context)}); "
            "those prompt sections will stay empty."
        )
    logger.success("Database is ready for the advisor.")
    return 0


if __name__ == '__main__':
    sys.exit(main())
