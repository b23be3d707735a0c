"""
models/blacklisted_token.py: denylist of access tokens logged out before
their natural expiry.

No foreign key: an entry is purely a token digest plus the moment after which
the token would be rejected by expiry anyway. The reaper deletes rows past
that moment.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db


class BlacklistedToken(db.Model):
    __tablename__ = "blacklisted_tokens"

    id: Mapped[int] = mapped_column(primary_key=True)

    # SHA-256 hex digest of the signed access JWT. UNIQUE makes a second
    # blacklist insert for the same token a no-op (ON CONFLICT DO NOTHING).
    token_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<BlacklistedToken id={self.id} expires_at={self.expires_at}>"
