#!/usr/bin/env python3
"""Create the salon database tables, including the active-slot unique index.

Pass ``--reset`` to drop every table first (development databases only).
"""
import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import inspect

from salonbook import create_app
from salonbook.extensions import db


def init_database(reset: bool = False) -> None:
    app = create_app()
    with app.app_context():
        if reset:
            db.drop_all()
            print("🗑  Dropped existing tables")
        db.create_all()
        tables = sorted(inspect(db.engine).get_table_names())
        print(f"✅ {len(tables)} tables ready on {app.config['SQLALCHEMY_DATABASE_URI']}: {', '.join(tables)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the salon database schema")
    parser.add_argument("--reset", action="store_true", help="drop all tables before creating them")
    args = parser.parse_args()
    init_database(reset=args.reset)
