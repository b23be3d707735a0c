"""
services/reaper.py: background sweep of expired blacklist and refresh rows.

ExpiryReaper owns one daemon thread that waits on a threading.Event. The
blacklist sweep and the refresh-token sweep have independent intervals; the
loop sleeps until whichever is due first. stop() sets the event and joins the
thread, so shutdown is deterministic. run_once() performs both sweeps
synchronously and is what tests and `flask purge-tokens` call.

A failed sweep is logged and the loop moves on to the next tick. A missed
sweep only means stale rows live one interval longer; it never affects
whether a token is accepted.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

from flask import Flask

from backend.app.extensions import db
from backend.app.services.token_codec import Clock, utcnow
from backend.app.services.token_store import PurgeResult, TokenStore
from backend.app.settings import AuthSettings

logger = logging.getLogger(__name__)


class ExpiryReaper:

    def __init__(
            self,
            app: Flask,
            settings: AuthSettings,
            clock: Clock = utcnow,
    ) -> None:
        for interval in (settings.reaper_blacklist_interval, settings.reaper_refresh_interval):
            if interval <= timedelta(0):
                raise ValueError(f"Reaper intervals must be positive, got {interval}.")
        self._app = app
        self._settings = settings
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self.schedule_from(clock())

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def start(self) -> None:
        """Starts the background thread. A second call is a no-op."""
        with self._lock:
            if self.running:
                logger.warning("Expiry reaper is already running")
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop,
                name="token-expiry-reaper",
                daemon=True,
            )
            self._thread.start()
        logger.info(
            "Expiry reaper started",
            extra={
                "blacklist_interval_s": self._settings.reaper_blacklist_interval.total_seconds(),
                "refresh_interval_s": self._settings.reaper_refresh_interval.total_seconds(),
            },
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signals the loop to exit and waits for the thread to finish."""
        with self._lock:
            thread = self._thread
            self._stop_event.set()
            self._thread = None
        if thread is not None:
            thread.join(timeout)
            logger.info("Expiry reaper stopped")

    # ── Sweeps ─────────────────────────────────────────────────────────────

    def sweep_blacklist(self) -> int:
        """Deletes blacklist rows whose token has expired. Returns the count."""
        deleted = self._in_transaction(
            lambda store, now: store.purge_blacklist(now)
        )
        if deleted:
            logger.info(
                "Purged expired blacklisted tokens",
                extra={"operation": "purge_blacklist", "count": deleted},
            )
        return deleted

    def sweep_refresh_tokens(self) -> int:
        """Deletes expired (and, by policy, revoked) refresh rows."""
        include_revoked = self._settings.reaper_purge_revoked
        deleted = self._in_transaction(
            lambda store, now: store.purge_refresh_tokens(now, include_revoked)
        )
        if deleted:
            logger.info(
                "Purged refresh tokens",
                extra={
                    "operation": "purge_refresh_tokens",
                    "count": deleted,
                    "include_revoked": include_revoked,
                },
            )
        return deleted

    def run_once(self) -> PurgeResult:
        """Runs both sweeps now, in the calling thread. Errors propagate."""
        return PurgeResult(
            blacklist_deleted=self.sweep_blacklist(),
            refresh_deleted=self.sweep_refresh_tokens(),
        )

    # ── Private helpers ────────────────────────────────────────────────────

    def _in_transaction(self, work: Callable[[TokenStore, datetime], int]) -> int:
        with self._app.app_context():
            session = db.session
            try:
                store = TokenStore(session, self._settings.reaper_timeout_ms)
                deleted = work(store, self._clock())
                session.commit()
                return deleted
            except Exception:
                session.rollback()
                raise

    # ── Scheduling ─────────────────────────────────────────────────────────

    def schedule_from(self, now: datetime) -> None:
        """Resets both sweeps to run one interval after `now`."""
        self._next_blacklist = now + self._settings.reaper_blacklist_interval
        self._next_refresh = now + self._settings.reaper_refresh_interval

    def next_due(self) -> datetime:
        return min(self._next_blacklist, self._next_refresh)

    def tick(self, now: datetime) -> None:
        """
        Runs whichever sweeps are due at `now` and schedules their next run.
        Sweep failures are logged, never raised.
        """
        if now >= self._next_blacklist:
            self._guarded("purge_blacklist", self.sweep_blacklist)
            self._next_blacklist = now + self._settings.reaper_blacklist_interval
        if now >= self._next_refresh:
            self._guarded("purge_refresh_tokens", self.sweep_refresh_tokens)
            self._next_refresh = now + self._settings.reaper_refresh_interval

    # ── Private helpers ────────────────────────────────────────────────────

    def _loop(self) -> None:
        self.schedule_from(self._clock())
        while not self._stop_event.is_set():
            wait = (self.next_due() - self._clock()).total_seconds()
            if self._stop_event.wait(max(wait, 0.0)):
                break
            self.tick(self._clock())

    @staticmethod
    def _guarded(operation: str, sweep: Callable[[], int]) -> None:
        try:
            sweep()
        except Exception:
            # Storage down, timeout, anything: keep the loop alive.
            logger.exception("Expiry sweep failed", extra={"operation": operation})
