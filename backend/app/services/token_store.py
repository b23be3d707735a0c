"""
services/token_store.py: persistence for refresh-token records and
blacklisted access tokens.

Every public method takes the raw signed token and digests it with SHA-256
before touching the database. Rows never hold a usable credential.

Transaction rule (same as the rest of the service layer): the store flushes,
it never commits. The route, or the reaper for sweeps, owns the commit, so
logout's blacklist insert and cascade revoke land in one transaction.

Blocking calls: each method is one round trip to the database. When a
statement timeout is configured and the backend is PostgreSQL, the first
call in each transaction sets a transaction-local statement_timeout, so one
store may span several commits.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.errors import TokenNotFoundError
from backend.app.models.blacklisted_token import BlacklistedToken
from backend.app.models.refresh_token import RefreshToken

logger = logging.getLogger(__name__)


def digest_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw token string."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; every value stored here is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class PurgeResult:
    blacklist_deleted: int
    refresh_deleted: int


class TokenStore:

    def __init__(self, session: Session, statement_timeout_ms: int = 0) -> None:
        self._session = session
        self._timeout_ms = statement_timeout_ms
        # Transaction the statement_timeout was last set in.
        self._timeout_txn = None

    # ── Blacklist ──────────────────────────────────────────────────────────

    def is_blacklisted(self, raw_token: str) -> bool:
        self._apply_timeout()
        found = self._session.execute(
            select(BlacklistedToken.id)
            .where(BlacklistedToken.token_hash == digest_token(raw_token))
            .limit(1)
        ).scalar_one_or_none()
        return found is not None

    def blacklist(self, raw_token: str, expires_at: datetime) -> None:
        """
        Adds an access token to the denylist.

        Idempotent: blacklisting a token that is already listed, including by
        a concurrent logout, is a silent success.
        """
        self._apply_timeout()
        values = {
            "token_hash": digest_token(raw_token),
            "expires_at": as_utc(expires_at),
        }
        dialect = self._dialect_name()

        if dialect == "postgresql":
            stmt = pg_insert(BlacklistedToken).values(**values)
        elif dialect == "sqlite":
            stmt = sqlite_insert(BlacklistedToken).values(**values)
        else:
            self._blacklist_with_savepoint(values)
            return

        self._session.execute(
            stmt.on_conflict_do_nothing(index_elements=["token_hash"])
        )

    def _blacklist_with_savepoint(self, values: dict) -> None:
        try:
            with self._session.begin_nested():
                self._session.add(BlacklistedToken(**values))
        except IntegrityError:
            # Only the unique token_hash index can fire here: already listed.
            logger.debug("Token already blacklisted", extra={"operation": "blacklist"})

    # ── Refresh tokens ─────────────────────────────────────────────────────

    def create_refresh_record(
            self,
            raw_token: str,
            user_id: int,
            issued_at: datetime,
            expires_at: datetime,
    ) -> RefreshToken:
        self._apply_timeout()
        record = RefreshToken(
            token_hash=digest_token(raw_token),
            user_id=user_id,
            issued_at=as_utc(issued_at),
            expires_at=as_utc(expires_at),
            revoked=False,
        )
        self._session.add(record)
        # flush so the row exists before we return; commit is the caller's job
        self._session.flush()
        return record

    def find_active_refresh(self, raw_token: str) -> RefreshToken | None:
        """
        Returns the non-revoked row for this token, or None.

        Expiry is NOT filtered here; an expired row that the reaper has not
        deleted yet is still returned and the caller compares expires_at.
        """
        self._apply_timeout()
        return self._session.execute(
            select(RefreshToken).where(
                RefreshToken.token_hash == digest_token(raw_token),
                RefreshToken.revoked.is_(False),
            )
        ).scalar_one_or_none()

    def revoke(self, raw_token: str, owner_id: int | None = None) -> None:
        """
        Marks a refresh token revoked. Revoking an already revoked token
        succeeds. With `owner_id`, only a token belonging to that user
        matches; anyone else's token looks exactly like a missing one.

        Raises:
          TokenNotFoundError: no row exists for this token.
        """
        self._apply_timeout()
        criteria = [RefreshToken.token_hash == digest_token(raw_token)]
        if owner_id is not None:
            criteria.append(RefreshToken.user_id == owner_id)
        result = self._session.execute(
            update(RefreshToken).where(*criteria).values(revoked=True)
        )
        if result.rowcount == 0:
            raise TokenNotFoundError("no refresh token row for digest")

    def revoke_all_for_user(self, user_id: int) -> int:
        """
        Revokes every active refresh token of `user_id` in one UPDATE.

        A single statement, not a read-then-write loop, so a concurrent
        login or refresh cannot interleave between rows.
        Returns the number of rows revoked.
        """
        self._apply_timeout()
        result = self._session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked.is_(False),
            )
            .values(revoked=True)
        )
        return result.rowcount

    # ── Purge ──────────────────────────────────────────────────────────────

    def purge_blacklist(self, now: datetime) -> int:
        self._apply_timeout()
        result = self._session.execute(
            delete(BlacklistedToken)
            .where(BlacklistedToken.expires_at < as_utc(now))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def purge_refresh_tokens(self, now: datetime, include_revoked: bool = True) -> int:
        self._apply_timeout()
        condition = RefreshToken.expires_at < as_utc(now)
        if include_revoked:
            condition = or_(condition, RefreshToken.revoked.is_(True))
        result = self._session.execute(
            delete(RefreshToken)
            .where(condition)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def purge_expired(self, now: datetime, include_revoked: bool = True) -> PurgeResult:
        """Deletes rows past their useful life from both tables."""
        return PurgeResult(
            blacklist_deleted=self.purge_blacklist(now),
            refresh_deleted=self.purge_refresh_tokens(now, include_revoked),
        )

    def count_active_refresh(self, user_id: int) -> int:
        self._apply_timeout()
        return self._session.execute(
            select(func.count(RefreshToken.id)).where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked.is_(False),
            )
        ).scalar_one()

    # ── Private helpers ────────────────────────────────────────────────────

    def _dialect_name(self) -> str:
        return self._session.get_bind().dialect.name

    def _apply_timeout(self) -> None:
        if self._timeout_ms <= 0:
            return
        current = self._session.get_transaction()
        if current is not None and current is self._timeout_txn:
            return
        if self._dialect_name() != "postgresql":
            return
        # set_config(..., true) is transaction-local, like SET LOCAL, but
        # accepts a bound parameter. It ends with the transaction, so it is
        # set again after every commit or rollback.
        self._session.execute(
            select(func.set_config("statement_timeout", str(int(self._timeout_ms)), True))
        )
        self._timeout_txn = self._session.get_transaction()
