"""
services/bootstrap.py: seeding of the initial admin account.

Used by `flask create-admin` and, when CREATE_DEFAULT_ADMIN is on, by
create_app() at startup. Flushes only; the caller commits.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.models.user import Role, User
from backend.app.services.credentials import hash_password
from backend.app.services.session_manager import normalise_email

logger = logging.getLogger(__name__)


def ensure_default_admin(
        session: Session,
        username: str,
        email: str,
        password: str,
        rounds: int = 12,
) -> User | None:
    """
    Creates an admin account unless at least one admin already exists.

    Returns the new User, or None when seeding was skipped.

    Raises:
      ValueError: password is empty, or the username/email is taken by a
      non-admin account.
    """
    admins = session.execute(
        select(func.count(User.id)).where(User.role == Role.ADMIN)
    ).scalar_one()
    if admins > 0:
        logger.info("Admin user already exists, skipping default admin creation")
        return None

    if not password:
        raise ValueError("DEFAULT_ADMIN_PASSWORD must be set to create the default admin.")

    email = normalise_email(email)
    clash = session.execute(
        select(User.id).where((User.username == username) | (User.email == email))
    ).first()
    if clash is not None:
        raise ValueError(
            f"Cannot create admin: username '{username}' or email '{email}' is already in use."
        )

    admin = User(
        username=username,
        email=email,
        password_hash=hash_password(password, rounds),
        role=Role.ADMIN,
    )
    session.add(admin)
    session.flush()

    logger.info(
        "Default admin user created",
        extra={"operation": "create_admin", "user_id": admin.id},
    )
    return admin
