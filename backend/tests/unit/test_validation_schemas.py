"""
tests/unit/test_validation_schemas.py: Unit tests for the auth marshmallow schemas.

No database and no Flask application context: the schemas inherit from
marshmallow.Schema directly, so they load standalone. Credential checks and
uniqueness rules are not tested here; they live in the session manager.
"""

from __future__ import annotations

import pytest
from marshmallow import ValidationError

from backend.app.schemas.auth_schema import (
    LoginSchema,
    LogoutSchema,
    RefreshTokenSchema,
    RegisterSchema,
    RevokeAllSchema,
)


# ═══════════════════════════════════════════════════════════════════════════
# RegisterSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestRegisterSchema:

    VALID = {"username": "alice_99", "email": "alice@example.com", "password": "Secure1!"}

    def _load(self, **overrides):
        return RegisterSchema().load({**self.VALID, **overrides})

    def test_valid_payload(self):
        result = self._load()
        assert result["username"] == "alice_99"
        assert result["email"]    == "alice@example.com"

    @pytest.mark.parametrize("username", ["abc", "a" * 50])
    def test_username_length_boundaries_pass(self, username):
        assert self._load(username=username)["username"] == username

    @pytest.mark.parametrize("username", ["ab", "a" * 51, "alice!", "alice smith"])
    def test_bad_username_raises(self, username):
        with pytest.raises(ValidationError) as exc:
            self._load(username=username)
        assert "username" in exc.value.messages

    def test_invalid_email_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load(email="notanemail")
        assert "email" in exc.value.messages

    @pytest.mark.parametrize(
        "password, message",
        [
            ("Ab1!", "Password must be at least 8 characters long."),
            ("12345678", "Password must contain at least one letter."),
            ("password", "Password must contain at least one digit."),
        ],
    )
    def test_weak_password_raises_rule_message(self, password, message):
        with pytest.raises(ValidationError) as exc:
            self._load(password=password)
        assert exc.value.messages["password"] == [message]

    def test_password_exactly_8_chars_passes(self):
        assert "password" in self._load(password="Passw0rd")

    def test_password_of_72_bytes_passes(self):
        assert self._load(password="a1" * 36)["password"] == "a1" * 36

    @pytest.mark.parametrize(
        "password",
        [
            "a1" * 36 + "b",   # 73 ASCII bytes
            "é" * 36 + "1",    # 37 characters, 73 bytes as UTF-8
        ],
    )
    def test_password_over_72_bytes_raises(self, password):
        with pytest.raises(ValidationError) as exc:
            self._load(password=password)
        assert exc.value.messages["password"] == ["Password must be at most 72 bytes long."]

    @pytest.mark.parametrize("missing", ["username", "email", "password"])
    def test_missing_field_raises(self, missing):
        data = {k: v for k, v in self.VALID.items() if k != missing}
        with pytest.raises(ValidationError) as exc:
            RegisterSchema().load(data)
        assert missing in exc.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# LoginSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestLoginSchema:

    def test_valid_payload(self):
        result = LoginSchema().load({"email": "alice@example.com", "password": "x"})
        assert result == {"email": "alice@example.com", "password": "x"}

    def test_malformed_email_is_not_a_schema_error(self):
        # Falls through to INVALID_CREDENTIALS, like an unknown address.
        result = LoginSchema().load({"email": "not-an-email", "password": "x"})
        assert result["email"] == "not-an-email"

    def test_missing_password_raises(self):
        with pytest.raises(ValidationError) as exc:
            LoginSchema().load({"email": "alice@example.com"})
        assert "password" in exc.value.messages

    def test_empty_email_raises(self):
        with pytest.raises(ValidationError) as exc:
            LoginSchema().load({"email": "", "password": "x"})
        assert "email" in exc.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# Token body schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestRefreshTokenSchema:

    def test_valid_payload(self):
        assert RefreshTokenSchema().load({"refresh_token": "abc"}) == {"refresh_token": "abc"}

    @pytest.mark.parametrize("body", [{}, {"refresh_token": ""}, {"refresh_token": 5}])
    def test_missing_or_bad_token_raises(self, body):
        with pytest.raises(ValidationError) as exc:
            RefreshTokenSchema().load(body)
        assert "refresh_token" in exc.value.messages


class TestLogoutSchema:

    def test_all_devices_defaults_to_false(self):
        assert LogoutSchema().load({}) == {"all_devices": False}

    def test_all_devices_true(self):
        assert LogoutSchema().load({"all_devices": True}) == {"all_devices": True}

    def test_non_boolean_raises(self):
        with pytest.raises(ValidationError) as exc:
            LogoutSchema().load({"all_devices": "sometimes"})
        assert "all_devices" in exc.value.messages


class TestRevokeAllSchema:

    def test_user_id_defaults_to_none(self):
        assert RevokeAllSchema().load({}) == {"user_id": None}

    def test_explicit_user_id(self):
        assert RevokeAllSchema().load({"user_id": 12}) == {"user_id": 12}

    @pytest.mark.parametrize("user_id", [0, -3, "abc"])
    def test_invalid_user_id_raises(self, user_id):
        with pytest.raises(ValidationError) as exc:
            RevokeAllSchema().load({"user_id": user_id})
        assert "user_id" in exc.value.messages
