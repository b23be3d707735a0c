"""
services/session_manager.py: login, refresh, revoke and logout.

Responsibilities:
  - Verify credentials and issue an access + refresh token pair
  - Exchange a refresh token for a new access token
  - Revoke one refresh token, or every refresh token of a user
  - Log out: blacklist the presented access token, optionally cascade to
    all of the user's refresh tokens
  - Register accounts and serve the caller's profile

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, current_app or HTTP status codes
  - Settings arrive through the constructor (AuthSettings)
  - Flushes only; the route commits. Logout's two writes therefore commit or
    roll back together.

Session lifecycle, per refresh token:
  Active ──revoke / revoke-all / logout(cascade)──▶ Revoked ──reaper──▶ Purged
  Active ──time passes──▶ Expired ──reaper──▶ Purged

Refresh does NOT rotate the refresh token. The same refresh token stays valid
until it expires or is revoked, so two concurrent refreshes with it both
succeed.

Failures raise AuthError subclasses (app/errors.py). They are logged here with
the operation and reason, then reduced to coarse codes by the global error
handler.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import (
    AppError,
    AuthError,
    ErrorCode,
    InvalidCredentialsError,
    TokenExpiredError,
    TokenRevokedError,
    UserGoneError,
)
from backend.app.models.user import Role, User
from backend.app.services.credentials import burn_verify_time, hash_password, verify_password
from backend.app.services.token_codec import Clock, TokenCodec, TokenKind, utcnow
from backend.app.services.token_store import TokenStore, as_utc
from backend.app.settings import AuthSettings

logger = logging.getLogger(__name__)

TOKEN_TYPE = "Bearer"


def _build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": Role(user.role).value,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def normalise_email(email: str) -> str:
    return email.strip().lower()


class SessionManager:

    def __init__(
            self,
            settings: AuthSettings,
            session: Session,
            codec: TokenCodec | None = None,
            store: TokenStore | None = None,
            clock: Clock = utcnow,
    ) -> None:
        self._settings = settings
        self._session = session
        self._clock = clock
        self._codec = codec or TokenCodec(settings, clock=clock)
        self._store = store or TokenStore(session, settings.store_timeout_ms)

    # ── Login / register ───────────────────────────────────────────────────

    def login(self, email: str, password: str) -> dict:
        """
        Validates credentials and issues a new access + refresh token pair.

        Raises:
          InvalidCredentialsError: unknown email or wrong password. Both cases
          produce the same client-facing error to avoid account enumeration.

        Returns: {"access_token", "refresh_token", "token_type", "expires_in", "user"}
        """
        with self._logged("login"):
            user = self._user_by_email(email)

            if user is None:
                # Same bcrypt cost as a real check, so response time does not
                # reveal whether the account exists.
                burn_verify_time(password, self._settings.bcrypt_rounds)
                raise InvalidCredentialsError("unknown email")

            if not verify_password(password, user.password_hash):
                raise InvalidCredentialsError(f"wrong password for user {user.id}")

            result = self._issue_token_pair(user)

        logger.info(
            "User logged in",
            extra={"operation": "login", "user_id": user.id},
        )
        return result

    def register(self, username: str, email: str, password: str) -> dict:
        """
        Creates a new `user`-role account and issues a token pair.

        Raises:
          AppError(DUPLICATE_EMAIL, 409)    email already registered
          AppError(DUPLICATE_USERNAME, 409) username already taken
        """
        email = normalise_email(email)

        if self._user_by_email(email) is not None:
            raise AppError(
                ErrorCode.DUPLICATE_EMAIL,
                f"The email address '{email}' is already registered.",
                409,
                field="email",
            )

        existing_username = self._session.execute(
            select(User).where(User.username == username)
        ).scalar_one_or_none()
        if existing_username is not None:
            raise AppError(
                ErrorCode.DUPLICATE_USERNAME,
                f"The username '{username}' is already taken.",
                409,
                field="username",
            )

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password, self._settings.bcrypt_rounds),
            role=Role.USER,
        )
        self._session.add(user)
        self._session.flush()  # populate user.id before creating refresh token

        logger.info("User registered", extra={"operation": "register", "user_id": user.id})
        return self._issue_token_pair(user)

    # ── Refresh ────────────────────────────────────────────────────────────

    def refresh(self, raw_refresh_token: str) -> dict:
        """
        Validates a refresh token and issues a new access token.

        Raises:
          TokenError subclasses: undecodable, forged, expired or access token
          TokenRevokedError:     no active row (revoked, purged or never stored)
          TokenExpiredError:     row expires_at has passed
          UserGoneError:         the owning user no longer exists

        Returns: {"access_token", "token_type", "expires_in"}
        """
        with self._logged("refresh", kind=TokenKind.REFRESH):
            claims = self._codec.decode(raw_refresh_token).require_kind(TokenKind.REFRESH)

            record = self._store.find_active_refresh(raw_refresh_token)
            if record is None:
                raise TokenRevokedError(f"no active refresh row for user {claims.subject}")

            if as_utc(record.expires_at) <= self._clock():
                raise TokenExpiredError(f"refresh row for user {record.user_id} expired")

            user = self._session.get(User, record.user_id)
            if user is None:
                raise UserGoneError(f"user {record.user_id} no longer exists")

            # Role comes from the current user row, not the refresh claims, so
            # a role change applies from the next refresh on.
            access = self._codec.mint(
                user.id, user.role, TokenKind.ACCESS, self._settings.access_ttl
            )

        return {
            "access_token": access,
            "token_type": TOKEN_TYPE,
            "expires_in": self._settings.access_ttl_seconds,
        }

    # ── Revocation ─────────────────────────────────────────────────────────

    def revoke(self, raw_refresh_token: str, owner_id: int | None = None) -> None:
        """
        Revokes one refresh token.

        Raises:
          TokenNotFoundError: no such token (or it belongs to another user
          when owner_id is given).
        """
        with self._logged("revoke", kind=TokenKind.REFRESH, user_id=owner_id):
            self._store.revoke(raw_refresh_token, owner_id=owner_id)
        logger.info("Refresh token revoked", extra={"operation": "revoke", "user_id": owner_id})

    def revoke_all(self, user_id: int) -> int:
        """Revokes every active refresh token of `user_id`. Returns the count."""
        count = self._store.revoke_all_for_user(user_id)
        logger.info(
            "All refresh tokens revoked",
            extra={"operation": "revoke_all", "user_id": user_id, "count": count},
        )
        return count

    def logout(self, raw_access_token: str, user_id: int, cascade_all: bool = False) -> dict:
        """
        Blacklists the presented access token; with cascade_all, also revokes
        every refresh token of the user.

        The caller has already passed the auth gate, so the token is only
        decoded to read its expiry, which sizes the blacklist entry.
        Calling logout twice with the same token succeeds both times.
        """
        expires_at = self._codec.read_expiry(raw_access_token)
        if expires_at is None:
            expires_at = self._clock() + self._settings.access_ttl

        self._store.blacklist(raw_access_token, expires_at)
        revoked = self.revoke_all(user_id) if cascade_all else 0

        logger.info(
            "User logged out",
            extra={
                "operation": "logout",
                "user_id": user_id,
                "cascade_all": cascade_all,
            },
        )
        return {"revoked_refresh_tokens": revoked}

    # ── Profile ────────────────────────────────────────────────────────────

    def current_user(self, user_id: int) -> dict:
        """
        Returns the profile of the authenticated user.

        Raises:
          AppError(USER_NOT_FOUND, 404): user deleted between token issue
          and this request.
        """
        user = self._session.get(User, user_id)
        if user is None:
            raise AppError(
                ErrorCode.USER_NOT_FOUND,
                f"User {user_id} not found.",
                404,
            )
        result = _build_user_dict(user)
        result["active_sessions"] = self._store.count_active_refresh(user_id)
        return result

    # ── Private helpers ────────────────────────────────────────────────────

    def _user_by_email(self, email: str) -> User | None:
        return self._session.execute(
            select(User).where(User.email == normalise_email(email))
        ).scalar_one_or_none()

    def _issue_token_pair(self, user: User) -> dict:
        access = self._codec.issue(
            user.id, user.role, TokenKind.ACCESS, self._settings.access_ttl
        )
        refresh = self._codec.issue(
            user.id, user.role, TokenKind.REFRESH, self._settings.refresh_ttl
        )
        self._store.create_refresh_record(
            refresh.token,
            user.id,
            issued_at=refresh.claims.issued_at,
            expires_at=refresh.claims.expires_at,
        )
        return {
            "access_token": access.token,
            "refresh_token": refresh.token,
            "token_type": TOKEN_TYPE,
            "expires_in": self._settings.access_ttl_seconds,
            "user": _build_user_dict(user),
        }

    @contextmanager
    def _logged(
            self,
            operation: str,
            kind: TokenKind | None = None,
            user_id: int | None = None,
    ) -> Iterator[None]:
        try:
            yield
        except AuthError as exc:
            logger.info(
                "Auth operation rejected",
                extra={
                    "operation": operation,
                    "reason": exc.reason,
                    "detail": exc.detail,
                    "token_kind": kind.value if kind else None,
                    "user_id": user_id,
                },
            )
            raise
