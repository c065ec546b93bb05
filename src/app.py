# app.py
# Development entrypoint for ShelfWiki

import sys

from extensions import db
from shelf_app import create_app
from shelfops.seed import seed_defaults

app = create_app()

# Create tables and the default roles, settings and admin account on first run
with app.app_context():
    db.create_all()
    seed_defaults(
        db.session,
        admin_email=app.config["ADMIN_EMAIL"],
        admin_password=app.config["ADMIN_PASSWORD"],
        bcrypt_rounds=app.config["BCRYPT_ROUNDS"],
    )


if __name__ == "__main__":
    debug = app.config["DEBUG"] or "debug" in sys.argv
    app.run(debug=debug, host="0.0.0.0", port=5000)
