#!/usr/bin/env python3
"""
Database reset script for Property Viewing Booking.

This script clears all data and rebuilds a local SQLite database from the
Alembic migrations. Use this to get a clean database state for development.
"""

import sys
import os

# Add backend/src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'backend', 'src'))

from sqlalchemy import inspect

from core.config import DATABASE_URL
from core.database import build_engine, drop_tables, upgrade_database

EXPECTED_TABLES = ['properties', 'appointments', 'blocked_slots', 'notifications', 'booking_locks']


def reset_database():
    """Reset the database by dropping all tables and recreating them."""

    print("🔄 Resetting Property Viewing Booking database...")
    print(f"Database URL: {DATABASE_URL}")

    # Confirm action (in case someone runs this accidentally against a server)
    if not DATABASE_URL.startswith("sqlite"):
        print("❌ ERROR: This script only works with a SQLite database!")
        print(f"Current database: {DATABASE_URL}")
        return

    fresh_engine = build_engine(DATABASE_URL)
    try:
        print("🗑️  Dropping existing tables...")
        drop_tables(bind=fresh_engine)

        print("🏗️  Running migrations...")
        upgrade_database(DATABASE_URL)

        table_names = inspect(fresh_engine).get_table_names()

        print("📋 Created tables:")
        for table in EXPECTED_TABLES:
            if table in table_names:
                print(f"   ✅ {table}")
            else:
                print(f"   ❌ {table} (missing)")

        if all(table in table_names for table in EXPECTED_TABLES):
            print("🎉 Database reset complete! All tables created successfully.")
        else:
            print("⚠️  Warning: Some tables may be missing")

    except Exception as e:
        print(f"❌ Error resetting database: {e}")
        raise
    finally:
        fresh_engine.dispose()


def show_usage():
    """Show usage information."""
    print("Property Viewing Booking Database Reset Script")
    print("=" * 46)
    print()
    print("This script will:")
    print("1. Drop all existing tables")
    print("2. Recreate all tables by running the Alembic migrations")
    print()
    print("Usage:")
    print("  DATABASE_URL=sqlite:///./dev.db python reset_database.py")
    print()
    print("Note: Only works with SQLite databases")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] in ['--help', '-h']:
        show_usage()
    else:
        reset_database()
