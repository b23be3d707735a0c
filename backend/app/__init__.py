"""
app/__init__.py: Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time, which allows:
           - Multiple isolated test app instances
           - `flask create-admin` / `flask purge-tokens` without a server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging (text or JSON lines)
  3. Initialise extensions (SQLAlchemy, Marshmallow, Limiter) via init_app()
  4. Build the frozen AuthSettings and the AuthGate, stored in app.extensions
  5. Register route blueprints under /api/v1 and the CLI commands
  6. Register global error handlers (AppError / AuthError → JSON, Exception → 500)
  7. Seed the default admin and start the expiry reaper when configured

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic or db.create_all() inspects it.
"""

from __future__ import annotations

import atexit
import logging

from flask import Flask, jsonify, request
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from backend.config import config_by_name, validate_production_config

logger = logging.getLogger(__name__)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".
    """
    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    from backend.app.logging_setup import configure_logging
    configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from backend.app.extensions import db, limiter, ma
    db.init_app(app)
    ma.init_app(app)
    limiter.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    with app.app_context():
        from backend.app.models import (  # noqa: F401
            blacklisted_token,
            refresh_token,
            user,
        )

    # ── Auth components ────────────────────────────────────────────────────
    _register_auth(app)

    # ── Blueprints ─────────────────────────────────────────────────────────
    _register_blueprints(app)

    from backend.app.cli import register_commands
    register_commands(app)

    # ── Error handlers ─────────────────────────────────────────────────────
    _register_error_handlers(app)
    _register_cors(app)

    # ── Startup tasks ──────────────────────────────────────────────────────
    if app.config.get("CREATE_DEFAULT_ADMIN"):
        _seed_default_admin(app)
    if app.config.get("REAPER_ENABLED") and not app.config.get("TESTING"):
        _start_reaper(app)

    return app


def _register_auth(app: Flask) -> None:
    """
    Builds the immutable AuthSettings once per app and the AuthGate that
    @require_auth uses. The gate opens a TokenStore on the request's session.
    """
    from backend.app.extensions import db
    from backend.app.middleware.auth_middleware import GATE_EXTENSION_KEY, AuthGate
    from backend.app.services.token_store import TokenStore
    from backend.app.settings import AuthSettings

    settings = AuthSettings.from_config(app.config)
    app.extensions["auth_settings"] = settings
    app.extensions[GATE_EXTENSION_KEY] = AuthGate(
        settings,
        store_factory=lambda: TokenStore(db.session, settings.store_timeout_ms),
    )


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    The url_prefix is set here so individual route files only specify
    the path relative to their resource (e.g. "/login" and "/<int:user_id>").
    """
    from backend.app.routes.auth import auth_bp
    from backend.app.routes.users import users_bp

    app.register_blueprint(auth_bp,  url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1/users")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct status
      AuthError       → reduced by to_app_error() to a generic 401 envelope
      RateLimitExceeded → 429 RATE_LIMITED in the same envelope
      ValidationError → marshmallow errors as MISSING_FIELD / INVALID_FIELD (400)
      HTTPException   → werkzeug 404 / 405 etc. in the same envelope
      Exception       → generic INTERNAL_ERROR (500); traceback logged only

    Stack traces never leave the server.
    """
    from flask_limiter import RateLimitExceeded

    from backend.app.errors import (
        RATE_LIMITED_MESSAGE,
        AppError,
        AuthError,
        ErrorCode,
        to_app_error,
    )
    from backend.app.extensions import db

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """Routes never catch AppError; they let it propagate here."""
        db.session.rollback()
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(AuthError)
    def handle_auth_error(error: AuthError):
        # The specific reason was already logged where it was raised.
        db.session.rollback()
        app_error = to_app_error(error)
        return jsonify(app_error.to_dict()), app_error.http_status

    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limited(error: RateLimitExceeded):
        logger.warning(
            "Rate limit exceeded",
            extra={"path": request.path, "limit": str(error.description)},
        )
        app_error = AppError(ErrorCode.RATE_LIMITED, RATE_LIMITED_MESSAGE, 429)
        return jsonify(app_error.to_dict()), app_error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Returns the FIRST field error only: one error per response.
        """
        messages = error.messages  # e.g. {"email": ["Missing data for required field."]}

        field = None
        message = "Invalid input."
        code = ErrorCode.INVALID_FIELD

        if isinstance(messages, dict):
            for field_name, field_errors in messages.items():
                field = field_name if field_name != "_schema" else None
                if isinstance(field_errors, list):
                    message = field_errors[0] if field_errors else "Invalid value."
                else:
                    message = str(field_errors)
                break
        elif isinstance(messages, list) and messages:
            message = messages[0]

        if str(message).startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD

        response_body = {"error": {"code": code, "message": str(message)}}
        if field is not None:
            response_body["error"]["field"] = field
        return jsonify(response_body), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return jsonify({
            "error": {
                "code": error.name.upper().replace(" ", "_"),
                "message": error.description,
            }
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions, storage failures included, and
        returns a generic 500 response. The traceback goes to the log.
        """
        db.session.rollback()
        logger.exception(
            "Unhandled exception",
            extra={"path": request.path, "method": request.method},
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _seed_default_admin(app: Flask) -> None:
    from backend.app.extensions import db
    from backend.app.services.bootstrap import ensure_default_admin

    with app.app_context():
        try:
            ensure_default_admin(
                db.session,
                username=app.config["DEFAULT_ADMIN_USERNAME"],
                email=app.config["DEFAULT_ADMIN_EMAIL"],
                password=app.config["DEFAULT_ADMIN_PASSWORD"],
                rounds=app.config["BCRYPT_LOG_ROUNDS"],
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise


def _start_reaper(app: Flask) -> None:
    from backend.app.services.reaper import ExpiryReaper

    reaper = ExpiryReaper(app, app.extensions["auth_settings"])
    app.extensions["expiry_reaper"] = reaper
    reaper.start()
    atexit.register(reaper.stop)
