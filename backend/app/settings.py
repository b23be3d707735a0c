"""
settings.py: immutable auth settings injected into the auth components.

TokenCodec, SessionManager, AuthGate and ExpiryReaper receive an AuthSettings
instance at construction time. None of them read current_app.config, so unit
tests can build components with their own secrets and TTLs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping


@dataclass(frozen=True)
class AuthSettings:
    secret_key: str
    algorithm: str = "HS256"
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    bcrypt_rounds: int = 12
    store_timeout_ms: int = 0
    reaper_blacklist_interval: timedelta = timedelta(hours=1)
    reaper_refresh_interval: timedelta = timedelta(hours=1)
    reaper_timeout_ms: int = 0
    reaper_purge_revoked: bool = True

    def __post_init__(self) -> None:
        if not self.secret_key:
            raise ValueError("AuthSettings.secret_key must not be empty.")
        if not self.algorithm.startswith("HS"):
            raise ValueError(
                f"Only HMAC algorithms are supported, got {self.algorithm!r}."
            )

    @property
    def access_ttl_seconds(self) -> int:
        return int(self.access_ttl.total_seconds())

    @classmethod
    def from_config(cls, config: Mapping) -> "AuthSettings":
        """Builds settings from a Flask config mapping (see backend/config.py)."""
        return cls(
            secret_key=config["JWT_SECRET_KEY"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            access_ttl=config["JWT_ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=config["JWT_REFRESH_TOKEN_EXPIRES"],
            bcrypt_rounds=config.get("BCRYPT_LOG_ROUNDS", 12),
            store_timeout_ms=config.get("AUTH_STORE_TIMEOUT_MS", 0),
            reaper_blacklist_interval=config.get(
                "REAPER_BLACKLIST_INTERVAL", timedelta(hours=1)
            ),
            reaper_refresh_interval=config.get(
                "REAPER_REFRESH_INTERVAL", timedelta(hours=1)
            ),
            reaper_timeout_ms=config.get("REAPER_TIMEOUT_MS", 0),
            reaper_purge_revoked=config.get("REAPER_PURGE_REVOKED", True),
        )
