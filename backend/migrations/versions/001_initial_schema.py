"""Initial schema: users, refresh_tokens, blacklisted_tokens.

Revision: 001_initial_schema
Created:  2026-10-17

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. users
  2. refresh_tokens (FK users.id ON DELETE CASCADE)
  3. blacklisted_tokens (no FK)
  4. Indexes used by the token store and the expiry reaper

Token columns hold the SHA-256 hex digest (64 chars) of the signed JWT, never
the token itself.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── Step 1: users ──────────────────────────────────────────────────────
    # role is a VARCHAR with a CHECK, matching the model's non-native Enum.

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'user'"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "LENGTH(TRIM(username)) > 0",
            name="ck_users_username_nonempty",
        ),
        sa.CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
        sa.CheckConstraint(
            "role IN ('admin', 'editor', 'user')",
            name="ck_users_role",
        ),
    )

    # ── Step 2: refresh_tokens ─────────────────────────────────────────────
    # FK: user_id ON DELETE CASCADE, the token is destroyed with its user.

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_refresh_tokens_user"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "revoked",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_refresh_tokens"),
        sa.UniqueConstraint("token_hash", name="uq_refresh_tokens_hash"),
    )

    # ── Step 3: blacklisted_tokens ─────────────────────────────────────────

    op.create_table(
        "blacklisted_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_blacklisted_tokens"),
        sa.UniqueConstraint("token_hash", name="uq_blacklisted_tokens_hash"),
    )

    # ── Step 4: Indexes ────────────────────────────────────────────────────
    # user_id: revoke-all and active-session counts.
    # expires_at: range deletes in the reaper sweeps.

    op.create_index("idx_refresh_tokens_user", "refresh_tokens", ["user_id"])
    op.create_index("idx_refresh_tokens_expires", "refresh_tokens", ["expires_at"])
    op.create_index("idx_blacklisted_tokens_expires", "blacklisted_tokens", ["expires_at"])


def downgrade() -> None:
    """
    Drop everything created in upgrade(), in reverse dependency order.
    Intended for local development resets only.
    """
    op.drop_index("idx_blacklisted_tokens_expires", table_name="blacklisted_tokens")
    op.drop_index("idx_refresh_tokens_expires",     table_name="refresh_tokens")
    op.drop_index("idx_refresh_tokens_user",        table_name="refresh_tokens")

    op.drop_table("blacklisted_tokens")
    op.drop_table("refresh_tokens")
    op.drop_table("users")
