"""
tests/unit/conftest.py: shared fixtures for database-free unit tests.

Components take an AuthSettings and a clock at construction, so every test
builds its own with a private secret and a clock it can move by hand.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.app.services.token_codec import TokenCodec
from backend.app.settings import AuthSettings

UNIT_SECRET = "unit-test-secret-key-0123456789-abcdef"
START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return AuthSettings(
        secret_key=UNIT_SECRET,
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
        bcrypt_rounds=4,
    )


@pytest.fixture
def codec(settings, clock):
    return TokenCodec(settings, clock=clock)
