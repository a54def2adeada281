"""
Migration script to create the production tracker tables.

Creates manufacturing_jobs, production_steps and system_updates (with their
indexes) when they do not exist yet.

Run this script with:
    python migrations/create_production_tables.py

Or from the app context:
    from migrations.create_production_tables import migrate
    migrate()
"""

import sys
import os

# Add parent directory to path to import tracker modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tracker import create_app
from tracker.models import db, Job, ProductionStep, SystemUpdate
from sqlalchemy import inspect

TABLES = [Job, ProductionStep, SystemUpdate]


def table_exists(table_name):
    """Check if a table exists in the database."""
    inspector = inspect(db.engine)
    return table_name in inspector.get_table_names()


def create_tables():
    """Create any missing production tables. Must run inside an app context.

    Returns:
        list: names of the tables that were created
    """
    created = []
    for model in TABLES:
        table_name = model.__tablename__
        if table_exists(table_name):
            print(f"✓ Table '{table_name}' already exists. Skipping.")
            continue
        print(f"Creating '{table_name}' table...")
        model.__table__.create(db.engine, checkfirst=True)
        created.append(table_name)

        inspector = inspect(db.engine)
        print("  Columns:")
        for col in inspector.get_columns(table_name):
            print(f"    - {col['name']}: {col['type']}")
        indexes = inspector.get_indexes(table_name)
        if indexes:
            print("  Indexes:")
            for idx in indexes:
                print(f"    - {idx['name']}: {idx['column_names']}")
    return created


def migrate(app=None):
    """Create the production tables if they don't exist."""
    app = app or create_app()

    with app.app_context():
        try:
            created = create_tables()
        except Exception as e:
            print(f"✗ ERROR: Failed to create tables: {e}")
            db.session.rollback()
            return False

        missing = [model.__tablename__ for model in TABLES if not table_exists(model.__tablename__)]
        if missing:
            print(f"✗ ERROR: Table creation verification failed for: {', '.join(missing)}")
            return False

        print(f"✓ Migration complete ({len(created)} table(s) created)")
        return True


if __name__ == "__main__":
    success = migrate()
    sys.exit(0 if success else 1)
