"""
cli.py: operator commands registered on the Flask CLI.

  flask --app backend.app:create_app create-admin [--username ... --email ... --password ...]
  flask --app backend.app:create_app purge-tokens
"""

from __future__ import annotations

import click
from flask import Flask, current_app
from flask.cli import with_appcontext

from backend.app.extensions import db
from backend.app.services.bootstrap import ensure_default_admin
from backend.app.services.reaper import ExpiryReaper


@click.command("create-admin")
@click.option("--username", default=None, help="Defaults to DEFAULT_ADMIN_USERNAME.")
@click.option("--email", default=None, help="Defaults to DEFAULT_ADMIN_EMAIL.")
@click.option("--password", default=None, help="Defaults to DEFAULT_ADMIN_PASSWORD.")
@with_appcontext
def create_admin_command(username: str | None, email: str | None, password: str | None) -> None:
    """Create the admin account unless an admin already exists."""
    config = current_app.config
    try:
        admin = ensure_default_admin(
            db.session,
            username=username or config["DEFAULT_ADMIN_USERNAME"],
            email=email or config["DEFAULT_ADMIN_EMAIL"],
            password=password or config["DEFAULT_ADMIN_PASSWORD"],
            rounds=config["BCRYPT_LOG_ROUNDS"],
        )
    except ValueError as exc:
        db.session.rollback()
        raise click.ClickException(str(exc)) from exc

    db.session.commit()
    if admin is None:
        click.echo("Admin user already exists, nothing to do.")
    else:
        click.echo(f"Created admin user '{admin.username}' (id={admin.id}).")


@click.command("purge-tokens")
@with_appcontext
def purge_tokens_command() -> None:
    """Delete expired blacklist rows and expired or revoked refresh tokens now."""
    reaper = ExpiryReaper(
        current_app._get_current_object(),
        current_app.extensions["auth_settings"],
    )
    result = reaper.run_once()
    click.echo(
        f"Deleted {result.blacklist_deleted} blacklisted token(s) "
        f"and {result.refresh_deleted} refresh token(s)."
    )


def register_commands(app: Flask) -> None:
    app.cli.add_command(create_admin_command)
    app.cli.add_command(purge_tokens_command)
