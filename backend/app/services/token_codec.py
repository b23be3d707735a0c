"""
services/token_codec.py: signed, expiring bearer tokens (PyJWT, HMAC).

Token design:
  - Access and refresh tokens are both JWTs signed with the single
    process-wide secret from AuthSettings.
  - Payload: sub (user id as str), role, typ ("access" | "refresh"),
    iat, exp, jti. jti makes two tokens minted for the same user in the
    same second distinct, which keeps refresh_tokens.token_hash unique.
  - decode() accepts only the configured algorithm. A token whose header
    names any other algorithm (including "none") is a BadSignatureError.
  - Expiry is checked against the injected clock, not the wall clock, so
    tests can move time without sleeping.

Failures raise the TokenError subclasses from app/errors.py. They stay
distinct here for logging and collapse to UNAUTHENTICATED at the boundary.
"""

from __future__ import annotations

import enum
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import jwt

from backend.app.errors import (
    BadSignatureError,
    MalformedTokenError,
    TokenExpiredError,
    WrongTokenKindError,
)
from backend.app.models.user import Role
from backend.app.settings import AuthSettings

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenKind(str, enum.Enum):
    ACCESS  = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class Claims:
    subject: int
    role: Role
    kind: TokenKind
    issued_at: datetime
    expires_at: datetime
    token_id: str

    def require_kind(self, kind: TokenKind) -> "Claims":
        if self.kind is not kind:
            raise WrongTokenKindError(
                f"expected {kind.value} token, got {self.kind.value}"
            )
        return self


@dataclass(frozen=True)
class IssuedToken:
    token: str
    claims: Claims


_REQUIRED_CLAIMS = ["sub", "role", "typ", "iat", "exp", "jti"]


class TokenCodec:

    def __init__(self, settings: AuthSettings, clock: Clock = utcnow) -> None:
        self._settings = settings
        self._clock = clock

    # ── Minting ────────────────────────────────────────────────────────────

    def issue(
            self,
            subject: int,
            role: Role,
            kind: TokenKind,
            ttl: timedelta,
    ) -> IssuedToken:
        """Signs a new token and returns it together with its claims."""
        # JWT NumericDate is whole seconds; truncate so the returned claims
        # equal what decode() will read back.
        issued_at = self._clock().astimezone(timezone.utc).replace(microsecond=0)
        expires_at = issued_at + ttl
        claims = Claims(
            subject=subject,
            role=Role(role),
            kind=TokenKind(kind),
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=secrets.token_hex(16),
        )
        payload = {
            "sub": str(claims.subject),
            "role": claims.role.value,
            "typ": claims.kind.value,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": claims.token_id,
        }
        token = jwt.encode(
            payload,
            self._settings.secret_key,
            algorithm=self._settings.algorithm,
        )
        return IssuedToken(token=token, claims=claims)

    def mint(
            self,
            subject: int,
            role: Role,
            kind: TokenKind,
            ttl: timedelta,
    ) -> str:
        return self.issue(subject, role, kind, ttl).token

    # ── Decoding ───────────────────────────────────────────────────────────

    def decode(self, token: str) -> Claims:
        """
        Verifies signature, algorithm and expiry, and returns the claims.

        Raises:
          MalformedTokenError: not a JWT, or required claims missing/invalid.
          BadSignatureError:   signature mismatch or unexpected algorithm.
          TokenExpiredError:   exp is not in the future.
        """
        claims = self._verified_claims(token)
        if claims.expires_at <= self._clock():
            raise TokenExpiredError(f"expired at {claims.expires_at.isoformat()}")
        return claims

    def read_expiry(self, token: str) -> datetime | None:
        """
        Returns the exp of a correctly signed token, expired or not.

        Used by logout to size the blacklist entry. Returns None when the
        token cannot be verified.
        """
        try:
            return self._verified_claims(token).expires_at
        except (MalformedTokenError, BadSignatureError):
            return None

    def _verified_claims(self, token: str) -> Claims:
        if not isinstance(token, str) or not token:
            raise MalformedTokenError("empty token")
        try:
            payload = jwt.decode(
                token,
                self._settings.secret_key,
                algorithms=[self._settings.algorithm],
                options={
                    "require": _REQUIRED_CLAIMS,
                    # exp is compared against the injected clock below.
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except jwt.InvalidAlgorithmError as exc:
            raise BadSignatureError(str(exc)) from exc
        except jwt.InvalidSignatureError as exc:
            raise BadSignatureError(str(exc)) from exc
        except jwt.InvalidTokenError as exc:
            # DecodeError, MissingRequiredClaimError and anything else PyJWT
            # considers structurally wrong.
            raise MalformedTokenError(str(exc)) from exc

        try:
            return Claims(
                subject=int(payload["sub"]),
                role=Role(payload["role"]),
                kind=TokenKind(payload["typ"]),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                token_id=str(payload["jti"]),
            )
        except (TypeError, ValueError, OverflowError, OSError) as exc:
            raise MalformedTokenError(f"invalid claim value: {exc}") from exc
