"""Create an admin account, or reset its password if it already exists."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``salonbook`` imports when run directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonbook import create_app
from salonbook.extensions import db
from salonbook.models import Admin


def create_admin(username: str, password: str, name: str, role: str) -> None:
    app = create_app()

    with app.app_context():
        admin = Admin.query.filter_by(username=username).first()
        if admin is None:
            admin = Admin(username=username, name=name, role=role)
            db.session.add(admin)
            action = "created"
        else:
            action = "updated"

        admin.password_hash = generate_password_hash(password)
        admin.is_active = True
        db.session.commit()

        print(f"Admin '{username}' {action}.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or reset a salon admin account.")
    parser.add_argument("username", help="Login username")
    parser.add_argument("password", help="Plain-text password to hash and store")
    parser.add_argument("--name", default="Salon Admin", help="Display name")
    parser.add_argument("--role", choices=("admin", "owner", "staff"), default="owner")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if len(args.password) < 6:
        sys.exit("Password must be at least 6 characters")
    create_admin(args.username, args.password, args.name, args.role)


if __name__ == "__main__":
    main()
