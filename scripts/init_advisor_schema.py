#!/usr/bin/env python3
"""
Initialize the advisor schema - conversations, messages, specialist insights.

    python scripts/init_advisor_schema.py                # full DDL (indexes, CHECKs, RLS)
    python scripts/init_advisor_schema.py --tables-only  # SQLAlchemy metadata only
"""

import argparse
import sys
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from loguru import logger
from infrastructure.log import setup_logging
from infrastructure.db import create_tables, init_advisor_schema


def main():
    parser = argparse.ArgumentParser(description="Create the advisor tables")
    parser.add_argument("--tables-only", action="store_true",
                        help="Create bare tables from SQLAlchemy metadata (local databases)")
    args = parser.parse_args()

    setup_logging()
    try:
        if args.tables_only:
            create_tables()
        else:
            init_advisor_schema()
        return 0
    except Exception as e:
        logger.error(f"Failed to initialize schema: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
