"""
errors.py: AppError base class, error code registry, and the internal
authentication failure taxonomy.

Every error returned by the API uses a code defined here. Do not raise strings
or generic exceptions from service or route code.

Two layers:
  - AuthError and its subclasses describe exactly which check failed. They are
    raised by the token codec, token store and session manager and are logged
    with that detail.
  - AppError is what reaches the client. to_app_error() collapses the auth
    taxonomy into a few non-enumerable codes so a caller can never tell a
    forged token from an expired one, or an unknown email from a bad password.
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# These are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"
    DUPLICATE_USERNAME         = "DUPLICATE_USERNAME"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    UNAUTHENTICATED            = "UNAUTHENTICATED"        # 401
    TOKEN_REVOKED              = "TOKEN_REVOKED"          # 401
    TOKEN_NOT_FOUND            = "TOKEN_NOT_FOUND"        # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403
    RATE_LIMITED               = "RATE_LIMITED"           # 429

    # ── System Errors ──────────────────────────────────────────────────────
    AUTH_UNAVAILABLE           = "AUTH_UNAVAILABLE"       # 503
    INTERNAL_ERROR             = "INTERNAL_ERROR"         # 500


# ── Client-facing messages ─────────────────────────────────────────────────
# One message per code. Identical input failures must produce identical text.

INVALID_CREDENTIALS_MESSAGE = "The email or password is incorrect."
UNAUTHENTICATED_MESSAGE     = "Invalid or expired credentials. Please log in again."
TOKEN_REVOKED_MESSAGE       = "This session has been revoked. Please log in again."
TOKEN_NOT_FOUND_MESSAGE     = "The refresh token is invalid."
RATE_LIMITED_MESSAGE        = "Too many requests. Please try again later."


# ── Internal auth taxonomy ─────────────────────────────────────────────────

class AuthError(Exception):
    """Base class for authentication failures. `reason` is for logs only."""

    reason = "auth_error"

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.reason)
        self.detail = detail


class InvalidCredentialsError(AuthError):
    reason = "invalid_credentials"


class TokenError(AuthError):
    """Raised by the token codec."""

    reason = "token_error"


class MalformedTokenError(TokenError):
    reason = "malformed"


class BadSignatureError(TokenError):
    reason = "bad_signature"


class TokenExpiredError(TokenError):
    reason = "expired"


class WrongTokenKindError(TokenError):
    reason = "wrong_kind"


class TokenRevokedError(AuthError):
    reason = "revoked"


class TokenNotFoundError(AuthError):
    reason = "not_found"


class UserGoneError(AuthError):
    reason = "user_gone"


def to_app_error(exc: AuthError) -> AppError:
    """Reduces an internal auth failure to its client-facing AppError."""
    if isinstance(exc, InvalidCredentialsError):
        return AppError(ErrorCode.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE, 401)
    if isinstance(exc, TokenRevokedError):
        return AppError(ErrorCode.TOKEN_REVOKED, TOKEN_REVOKED_MESSAGE, 401)
    if isinstance(exc, TokenNotFoundError):
        return AppError(ErrorCode.TOKEN_NOT_FOUND, TOKEN_NOT_FOUND_MESSAGE, 401)
    return AppError(ErrorCode.UNAUTHENTICATED, UNAUTHENTICATED_MESSAGE, 401)
