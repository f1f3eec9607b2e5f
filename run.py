from __future__ import annotations
import os
from salonbook import create_app
from salonbook.extensions import db

def main() -> None:
    flask_app = create_app()

    # SQLite dev databases are created on first run; use scripts/init_db.py elsewhere
    if flask_app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        with flask_app.app_context():
            db.create_all()

    if os.environ.get("SHOW_ROUTES", "0") in {"1", "true", "True"}:
        print("\n=== URL MAP ===")
        for rule in sorted(flask_app.url_map.iter_rules(), key=lambda x: x.rule):
            print(f"{','.join(sorted(rule.methods - {'HEAD', 'OPTIONS'})):<20} {rule.rule}")
        print("===============\n")

    debug_enabled = os.environ.get("FLASK_DEBUG", "0") in {"1", "true", "True"}
    flask_app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=debug_enabled)

if __name__ == "__main__":
    main()
