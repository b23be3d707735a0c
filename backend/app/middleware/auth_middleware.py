"""
middleware/auth_middleware.py: bearer-token gate for protected routes.

The @require_auth decorator runs AuthGate.authenticate() on the request's
Authorization header:
  1. Reads the header (expected: "Bearer <token>")
  2. Rejects tokens on the blacklist (logged-out access tokens)
  3. Verifies signature, algorithm and expiry through the TokenCodec
  4. Requires an access token; a refresh token is never a bearer credential
  5. Attaches user_id, user_role and the raw token to flask.g

@require_role(Role.ADMIN, ...) runs the same gate and then checks the
caller's role claim.

Error codes:
  TOKEN_MISSING    (401) no Authorization header
  UNAUTHENTICATED  (401) malformed header, or any token failure. Forged,
                         expired, blacklisted and wrong-kind tokens all look
                         the same to the client; the log line has the reason.
  FORBIDDEN        (403) authenticated, but role not allowed
  AUTH_UNAVAILABLE (503) blacklist could not be consulted. The request is
                         refused, never admitted on a storage error.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Callable

from flask import current_app, g, request
from sqlalchemy.exc import SQLAlchemyError

from backend.app.errors import (
    UNAUTHENTICATED_MESSAGE,
    AppError,
    ErrorCode,
    TokenError,
)
from backend.app.models.user import Role
from backend.app.services.token_codec import Clock, TokenCodec, TokenKind, utcnow
from backend.app.services.token_store import TokenStore
from backend.app.settings import AuthSettings

logger = logging.getLogger(__name__)

GATE_EXTENSION_KEY = "auth_gate"


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: Role
    token: str


class AuthGate:
    """
    Authenticates a raw Authorization header value.

    `store_factory` returns a TokenStore bound to the current request's
    session; the gate itself holds no per-request state.
    """

    def __init__(
            self,
            settings: AuthSettings,
            store_factory: Callable[[], TokenStore],
            codec: TokenCodec | None = None,
            clock: Clock = utcnow,
    ) -> None:
        self._settings = settings
        self._store_factory = store_factory
        self._codec = codec or TokenCodec(settings, clock=clock)

    def authenticate(self, authorization: str | None) -> Identity:
        # ── Step 1: Require Authorization header ──────────────────────────
        if not authorization:
            raise AppError(
                ErrorCode.TOKEN_MISSING,
                "Authentication required. Provide a Bearer token in the Authorization header.",
                401,
            )

        # ── Step 2: Parse "Bearer <token>" format ─────────────────────────
        parts = authorization.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            self._reject("bad_header")
        raw_token = parts[1]

        # ── Step 3: Blacklist lookup (fail closed) ────────────────────────
        try:
            blacklisted = self._store_factory().is_blacklisted(raw_token)
        except SQLAlchemyError:
            logger.exception(
                "Blacklist lookup failed; refusing request",
                extra={"operation": "authenticate", "reason": "store_unavailable"},
            )
            raise AppError(
                ErrorCode.AUTH_UNAVAILABLE,
                "Authentication is temporarily unavailable. Please retry shortly.",
                503,
            )
        if blacklisted:
            self._reject("blacklisted")

        # ── Step 4: Decode and require an access token ────────────────────
        try:
            claims = self._codec.decode(raw_token).require_kind(TokenKind.ACCESS)
        except TokenError as exc:
            self._reject(exc.reason, detail=exc.detail)

        return Identity(user_id=claims.subject, role=claims.role, token=raw_token)

    @staticmethod
    def _reject(reason: str, detail: str = "") -> None:
        logger.info(
            "Request authentication rejected",
            extra={
                "operation": "authenticate",
                "reason": reason,
                "detail": detail,
                "token_kind": TokenKind.ACCESS.value,
            },
        )
        raise AppError(ErrorCode.UNAUTHENTICATED, UNAUTHENTICATED_MESSAGE, 401)


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces bearer authentication.

    Usage:
        @auth_bp.route("/me")
        @require_auth
        def me():
            user_id = g.user_id  # always an int when this runs
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def require_role(*roles: Role) -> Callable:
    """
    Route decorator: authenticate, then require one of `roles`.

        @users_bp.route("/<int:user_id>")
        @require_role(Role.ADMIN)
        def get_user(user_id): ...
    """
    allowed = frozenset(Role(role) for role in roles)

    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            identity = _authenticate_request()
            if identity.role not in allowed:
                logger.info(
                    "Role check failed",
                    extra={
                        "operation": "require_role",
                        "user_id": identity.user_id,
                        "role": identity.role.value,
                    },
                )
                raise AppError(
                    ErrorCode.FORBIDDEN,
                    "You do not have permission to perform this action.",
                    403,
                )
            return f(*args, **kwargs)

        return decorated

    return decorator


def _authenticate_request() -> Identity:
    """
    Runs the app's AuthGate on the current request and populates flask.g.

    Raises AppError on any failure; the global error handler renders it.
    """
    gate: AuthGate = current_app.extensions[GATE_EXTENSION_KEY]
    identity = gate.authenticate(request.headers.get("Authorization"))

    g.user_id = identity.user_id
    g.user_role = identity.role
    g.access_token = identity.token
    return identity
