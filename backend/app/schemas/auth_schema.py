"""
schemas/auth_schema.py: Marshmallow schemas for the authentication endpoints.

Validation responsibility:
  - This file: field types, lengths, formats.
  - services/session_manager.py: DUPLICATE_EMAIL / DUPLICATE_USERNAME checks
    and credential correctness (both need a DB lookup).

All schemas inherit from marshmallow.Schema directly, not ma.Schema, so they
load without an application context.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates

from backend.app.services.credentials import MAX_PASSWORD_BYTES


class RegisterSchema(Schema):
    """
    POST /auth/register

      username : 3-50 chars, letters, digits and underscore
      email    : valid email, at most 255 chars
      password : min 8 chars, at most 72 bytes as UTF-8,
                 at least one letter and one digit
    """

    username = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=3,
                max=50,
                error="Username must be between 3 and 50 characters.",
            ),
            validate.Regexp(
                r"^[a-zA-Z0-9_]+$",
                error="Username may only contain letters, numbers, and underscores.",
            ),
        ],
    )
    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )
    password = fields.Str(required=True, load_only=True)

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes long."
            )
        if not any(c.isalpha() for c in value):
            raise ValidationError("Password must contain at least one letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Password must contain at least one digit.")


class LoginSchema(Schema):
    """
    POST /auth/login

    Only presence is checked. A malformed email is not a 400: it goes through
    the same path as an unknown one and ends in INVALID_CREDENTIALS.
    """

    email = fields.Str(required=True, validate=validate.Length(min=1))
    password = fields.Str(required=True, load_only=True)


class RefreshTokenSchema(Schema):
    """POST /auth/refresh and POST /auth/revoke"""

    refresh_token = fields.Str(required=True, validate=validate.Length(min=1))


class LogoutSchema(Schema):
    """POST /auth/logout. all_devices also revokes every refresh token."""

    all_devices = fields.Bool(load_default=False)


class RevokeAllSchema(Schema):
    """POST /auth/revoke-all. user_id other than the caller's is admin-only."""

    user_id = fields.Int(
        load_default=None,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )
