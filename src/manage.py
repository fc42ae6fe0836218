"""Dispatch database management CLI.

Usage:
    PROTEAN_ENV=production python src/manage.py setup-db   # Create all tables
    PROTEAN_ENV=production python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys

from dispatch.domain import dispatch
from dispatch.utils.db import drop_db, setup_db
from dispatch.utils.logging import configure_logging


def setup_database():
    print("Initializing dispatch domain...")
    dispatch.init()
    print("Creating dispatch database schema...")
    setup_db(dispatch)
    print("Done.")


def drop_database():
    print("Initializing dispatch domain...")
    dispatch.init()
    print("Dropping dispatch database schema...")
    drop_db(dispatch)
    print("Done.")


def main():
    configure_logging()
    parser = argparse.ArgumentParser(description="Dispatch database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
