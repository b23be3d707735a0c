"""
routes/auth.py: authentication route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE SessionManager operation
  - Commit the DB session
  - Return the standard response envelope: {"data": {...}, "warnings": []}

Every endpoint shares the per-client AUTH_RATE_LIMIT budget; a client over
it gets 429 RATE_LIMITED before the handler runs.

No business logic here. No DB queries. AppError and AuthError propagate to
the global error handlers in app/__init__.py; routes never catch them.

Endpoints (url_prefix=/api/v1/auth):
  POST   /register    → 201
  POST   /login       → 200
  POST   /refresh     → 200
  POST   /revoke      → 200  (auth required)
  POST   /revoke-all  → 200  (auth required; admins may target another user)
  POST   /logout      → 200  (auth required)
  GET    /me          → 200  (auth required)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db, limiter
from backend.app.middleware.auth_middleware import require_auth
from backend.app.models.user import Role
from backend.app.schemas.auth_schema import (
    LoginSchema,
    LogoutSchema,
    RefreshTokenSchema,
    RegisterSchema,
    RevokeAllSchema,
)
from backend.app.services.session_manager import SessionManager

auth_bp = Blueprint("auth", __name__)


def _auth_rate_limit() -> str:
    return current_app.config["AUTH_RATE_LIMIT"]


# One budget per client across every /auth endpoint.
limiter.shared_limit(_auth_rate_limit, scope="auth")(auth_bp)


def _session_manager() -> SessionManager:
    return SessionManager(current_app.extensions["auth_settings"], db.session)


def _json_body() -> dict:
    return request.get_json(force=True, silent=True) or {}


@auth_bp.route("/register", methods=["POST"])
def register():
    """POST /auth/register: create account, return tokens. (No auth required.)"""
    data = RegisterSchema().load(_json_body())
    result = _session_manager().register(
        username=data["username"],
        email=data["email"],
        password=data["password"],
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    """POST /auth/login: authenticate by email, return tokens. (No auth required.)"""
    data = LoginSchema().load(_json_body())
    result = _session_manager().login(
        email=data["email"],
        password=data["password"],
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /auth/refresh: exchange a refresh token for a new access token."""
    data = RefreshTokenSchema().load(_json_body())
    result = _session_manager().refresh(data["refresh_token"])
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/revoke", methods=["POST"])
@require_auth
def revoke():
    """POST /auth/revoke: revoke one of the caller's refresh tokens."""
    data = RefreshTokenSchema().load(_json_body())
    _session_manager().revoke(data["refresh_token"], owner_id=g.user_id)
    db.session.commit()
    return jsonify({"data": {"message": "Refresh token revoked."}, "warnings": []}), 200


@auth_bp.route("/revoke-all", methods=["POST"])
@require_auth
def revoke_all():
    """POST /auth/revoke-all: revoke every refresh token of a user."""
    data = RevokeAllSchema().load(_json_body())
    target_id = data["user_id"] or g.user_id
    if target_id != g.user_id and g.user_role is not Role.ADMIN:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You do not have permission to perform this action.",
            403,
        )
    count = _session_manager().revoke_all(target_id)
    db.session.commit()
    return jsonify({
        "data": {"user_id": target_id, "revoked_refresh_tokens": count},
        "warnings": [],
    }), 200


@auth_bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    """POST /auth/logout: blacklist the presented access token."""
    data = LogoutSchema().load(_json_body())
    result = _session_manager().logout(
        raw_access_token=g.access_token,
        user_id=g.user_id,
        cascade_all=data["all_devices"],
    )
    db.session.commit()
    result["message"] = "Logged out successfully."
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /auth/me: current user profile."""
    result = _session_manager().current_user(g.user_id)
    return jsonify({"data": result, "warnings": []}), 200
