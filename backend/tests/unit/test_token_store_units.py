"""
Unit tests for the statement_timeout handling in services/token_store.py.

The session is a MagicMock; get_transaction() is scripted to look like one
transaction, a commit, then a second transaction.
"""

from __future__ import annotations

from unittest.mock import MagicMock

from backend.app.services.token_store import TokenStore


def _session(dialect: str, transactions: list) -> MagicMock:
    session = MagicMock()
    session.get_bind.return_value.dialect.name = dialect
    session.get_transaction.side_effect = transactions
    session.execute.return_value.scalar_one_or_none.return_value = None
    return session


def _timeout_statements(session: MagicMock) -> int:
    return sum(
        1 for call in session.execute.call_args_list
        if "set_config" in str(call.args[0])
    )


def test_timeout_is_set_once_per_transaction():
    first, second = object(), object()
    # is_blacklisted #1: none yet, then set inside `first`
    # is_blacklisted #2: still `first`
    # is_blacklisted #3: after commit, none, then set inside `second`
    session = _session("postgresql", [None, first, first, None, second])
    store = TokenStore(session, statement_timeout_ms=1500)

    store.is_blacklisted("tok-a")
    store.is_blacklisted("tok-b")
    assert _timeout_statements(session) == 1

    store.is_blacklisted("tok-c")
    assert _timeout_statements(session) == 2


def test_timeout_skipped_when_disabled():
    session = _session("postgresql", [])
    store = TokenStore(session, statement_timeout_ms=0)

    store.is_blacklisted("tok-a")

    assert _timeout_statements(session) == 0
    session.get_transaction.assert_not_called()


def test_timeout_skipped_on_other_dialects():
    session = _session("sqlite", [None, None])
    store = TokenStore(session, statement_timeout_ms=1500)

    store.is_blacklisted("tok-a")
    store.is_blacklisted("tok-b")

    assert _timeout_statements(session) == 0
