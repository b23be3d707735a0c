"""
services/credentials.py: password hashing and verification (bcrypt).

verify_password() never raises. A wrong password and a malformed stored hash
both return False; only the log line tells them apart. Raw passwords are
never logged.

bcrypt reads at most 72 bytes of input. Registration rejects longer
passwords, hash_password refuses them, and verify_password treats them as a
mismatch after paying the same bcrypt cost.
"""

from __future__ import annotations

import functools
import logging

import bcrypt

logger = logging.getLogger(__name__)

MAX_PASSWORD_BYTES = 72


def hash_password(plaintext: str, rounds: int = 12) -> str:
    """bcrypt hash of `plaintext` with cost factor `rounds`."""
    encoded = plaintext.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plaintext: str, stored_hash: str) -> bool:
    """
    Checks `plaintext` against a bcrypt hash.

    bcrypt.checkpw compares in constant time, so the result leaks nothing
    about how close a wrong password was.
    """
    try:
        encoded = plaintext.encode("utf-8")
        stored = stored_hash.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            # Never a match, but costs one full check against the stored hash.
            bcrypt.checkpw(encoded[:MAX_PASSWORD_BYTES], stored)
            return False
        return bcrypt.checkpw(encoded, stored)
    except (ValueError, TypeError, AttributeError) as exc:
        logger.warning(
            "Stored password hash could not be checked",
            extra={"operation": "verify_password", "error": type(exc).__name__},
        )
        return False


@functools.lru_cache(maxsize=8)
def _dummy_hash(rounds: int) -> str:
    return hash_password("dummy-password-for-timing", rounds)


def burn_verify_time(plaintext: str, rounds: int = 12) -> None:
    """
    Runs one bcrypt verification against a throwaway hash.

    Called when the account does not exist so that an unknown email costs the
    same time as a wrong password.
    """
    verify_password(plaintext, _dummy_hash(rounds))
