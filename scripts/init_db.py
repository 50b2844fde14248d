"""
Standalone script to create the database schema.

Creates every table and, on PostgreSQL, the btree_gist extension and the
exclusion constraint that keeps a tutor from being double-booked.

Usage:
    python scripts/init_db.py [--prod]
"""

import sys
import asyncio
import argparse
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

# --- Path Setup ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT / 'src') not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT / 'src'))

from tutor_booking_backend.common.config import settings
from tutor_booking_backend.database.engine import build_engine, create_schema


async def init_db(db_url: str):
    engine = build_engine(db_url)
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Create the TutorBooking database schema.")
    parser.add_argument("--prod", action="store_true", help="Create the schema in the PRODUCTION database.")
    args = parser.parse_args()

    if args.prod:
        print("⚠️  WARNING: You are about to create the schema in the PRODUCTION database. ⚠️")
        confirmation = input("Are you sure you want to proceed? (y/n): ").strip().lower()
        if confirmation != 'y':
            print("Operation aborted.")
            return
        db_url = settings.DATABASE_URL_PROD
    else:
        db_url = settings.DATABASE_URL_TEST

    print("Connecting to database...")
    try:
        asyncio.run(init_db(db_url))
        print("✅ Schema created successfully.")
    except SQLAlchemyError as e:
        print(f"❌ Schema creation failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
