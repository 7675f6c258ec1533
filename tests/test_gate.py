"""Unit tests for auth/gate.py -- AuthorizationGate.

Covers:
- Anonymous -> RedirectTo("/login")
- resolved id of an existing account -> Admit(account)
- resolved id of a deleted account -> RedirectTo("/login")
- destroyed session -> Anonymous -> denied
"""

from auth.gate import Admit, AuthorizationGate, RedirectTo
from auth.sessions import SessionManager
from auth.store import AccountStore


def test_anonymous_is_redirected(store: AccountStore) -> None:
    gate = AuthorizationGate(store)
    assert gate.require_authenticated(None) == RedirectTo("/login")


def test_existing_account_is_admitted(store: AccountStore) -> None:
    account = store.create_local("alice", b"h", b"s")
    decision = AuthorizationGate(store).require_authenticated(account.id)
    assert isinstance(decision, Admit)
    assert decision.account.id == account.id


def test_deleted_account_is_redirected(store: AccountStore) -> None:
    account = store.create_local("alice", b"h", b"s")
    gate = AuthorizationGate(store)
    assert isinstance(gate.require_authenticated(account.id), Admit)

    store.delete_account(account.id)

    assert gate.require_authenticated(account.id) == RedirectTo("/login")


def test_destroyed_session_is_denied(store: AccountStore, sessions: SessionManager) -> None:
    account = store.create_local("alice", b"h", b"s")
    gate = AuthorizationGate(store)
    token = sessions.establish(account.id)
    assert isinstance(gate.require_authenticated(sessions.resolve(token)), Admit)

    sessions.destroy(token)

    assert gate.require_authenticated(sessions.resolve(token)) == RedirectTo("/login")


def test_custom_login_path(store: AccountStore) -> None:
    gate = AuthorizationGate(store, login_path="/signin")
    assert gate.require_authenticated(None) == RedirectTo("/signin")
