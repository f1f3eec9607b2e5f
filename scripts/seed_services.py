"""Seed the default service catalog.

Existing services are matched by name; their price, duration and category
are refreshed and they are re-activated. Prices are stored in paise.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure the project root is on sys.path so ``salonbook`` imports when run directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonbook import create_app
from salonbook.extensions import db
from salonbook.models import Service

DEFAULT_SERVICES = [
    # name, rupees, minutes, category, description
    ("Hair Cut", 150, 30, "Hair Care", "Classic cut with wash and styling"),
    ("Beard Trim", 80, 20, "Beard Care", "Beard trim and shaping"),
    ("Shave", 100, 25, "Beard Care", "Traditional wet shave with hot towel"),
    ("Hair Styling", 200, 45, "Styling", "Blow dry and styling"),
    ("Hair Wash", 50, 15, "Hair Care", "Shampoo and conditioning"),
    ("Facial", 300, 60, "Skin Care", "Cleansing facial treatment"),
    ("Massage", 250, 30, "Skin Care", "Head and shoulder massage"),
    ("Complete Grooming", 500, 90, "Complete Package", "Cut, shave, facial and massage"),
]


def seed_services(dry_run: bool = False) -> None:
    app = create_app()

    with app.app_context():
        created, updated = 0, 0
        for name, rupees, minutes, category, description in DEFAULT_SERVICES:
            service = Service.query.filter_by(name=name).first()
            if service is None:
                service = Service(name=name)
                db.session.add(service)
                created += 1
            else:
                updated += 1
            service.price_paise = rupees * 100
            service.duration_minutes = minutes
            service.category = category
            service.description = description
            service.is_active = True

        if dry_run:
            db.session.rollback()
            print(f"Dry run: would create {created} and update {updated} services.")
            return

        db.session.commit()
        print(f"Seeded services: {created} created, {updated} updated.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed the default salon service catalog.")
    parser.add_argument("--dry-run", action="store_true", help="Show what would change without committing")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    seed_services(dry_run=args.dry_run)


if __name__ == "__main__":
    main()
