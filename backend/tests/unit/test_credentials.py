"""
Unit tests for services/credentials.py.
"""

from __future__ import annotations

import logging

import pytest

from backend.app.services import credentials
from backend.app.services.credentials import burn_verify_time, hash_password, verify_password


def test_hash_then_verify_accepts_correct_password():
    stored = hash_password("Password1", rounds=4)
    assert stored != "Password1"
    assert verify_password("Password1", stored) is True


def test_wrong_password_is_rejected():
    stored = hash_password("Password1", rounds=4)
    assert verify_password("Password2", stored) is False


def test_hashes_are_salted():
    assert hash_password("Password1", rounds=4) != hash_password("Password1", rounds=4)


def test_malformed_hash_returns_false_and_logs(caplog):
    with caplog.at_level(logging.WARNING, logger=credentials.__name__):
        assert verify_password("Password1", "not-a-bcrypt-hash") is False

    assert "could not be checked" in caplog.text
    # The candidate password never reaches the log.
    assert "Password1" not in caplog.text


def test_missing_hash_returns_false():
    assert verify_password("Password1", None) is False


def test_burn_verify_time_runs_one_verification(monkeypatch):
    calls = []
    monkeypatch.setattr(
        credentials,
        "verify_password",
        lambda plaintext, stored: calls.append(stored) or False,
    )

    burn_verify_time("whatever", rounds=4)

    assert len(calls) == 1
    assert calls[0].startswith("$2")


def test_hash_password_refuses_more_than_72_bytes():
    with pytest.raises(ValueError):
        hash_password("a1" * 37, rounds=4)


def test_long_password_never_matches_its_72_byte_prefix():
    stored = hash_password("a1" * 36, rounds=4)
    assert verify_password("a1" * 40, stored) is False


def test_long_password_still_pays_one_bcrypt_check(monkeypatch):
    checked = []
    real_checkpw = credentials.bcrypt.checkpw

    def counting_checkpw(password, hashed):
        checked.append(len(password))
        return real_checkpw(password, hashed)

    monkeypatch.setattr(credentials.bcrypt, "checkpw", counting_checkpw)

    burn_verify_time("x" * 100, rounds=4)

    assert checked == [72]
