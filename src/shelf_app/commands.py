"""
commands.py - Flask CLI commands

    flask --app app init-db
    flask --app app create-admin admin@example.com "Site Admin" secret-password
"""

from __future__ import annotations

import click
from flask import Flask, current_app
from flask.cli import with_appcontext

from extensions import db
from shelfops.models import Role
from shelfops.repos import UserRepo
from shelfops.security import PasswordError, hash_password
from shelfops.seed import seed_defaults


@click.command("init-db")
@with_appcontext
def init_db_command() -> None:
    """Create tables and seed default roles, permissions, settings and the admin user."""
    db.create_all()
    seed_defaults(
        db.session,
        admin_email=current_app.config.get("ADMIN_EMAIL"),
        admin_password=current_app.config.get("ADMIN_PASSWORD", "password"),
        bcrypt_rounds=current_app.config.get("BCRYPT_ROUNDS", 12),
    )
    click.echo("Initialized the database.")


@click.command("create-admin")
@click.argument("email")
@click.argument("name")
@click.argument("password")
@with_appcontext
def create_admin_command(email: str, name: str, password: str) -> None:
    """Create a confirmed user holding the admin role."""
    repo = UserRepo(db.session)
    if repo.email_taken(email):
        raise click.ClickException(f"A user with email {email} already exists.")

    admin_role = Role.get_role(db.session, "admin")
    if admin_role is None:
        raise click.ClickException("The admin role does not exist. Run `flask init-db` first.")

    try:
        password_hash = hash_password(password, current_app.config.get("BCRYPT_ROUNDS", 12))
    except PasswordError as e:
        raise click.ClickException(str(e)) from e

    user = repo.create(name, email, password_hash, email_confirmed=True, role_ids=[admin_role.id])
    db.session.commit()
    current_app.logger.info("Admin user %s created from the command line", user.id)
    click.echo(f"Admin user {user.email} created.")


def register_commands(app: Flask) -> None:
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_admin_command)
