"""
auth/gate.py -- Admit-or-redirect decision for protected routes.

The gate depends only on the session resolution it is handed (an account id
or None) and on the account store. It does not read cookies or request state.
Account existence is re-checked on every call: a session may outlive the
account it was established for.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.models import Account
from auth.store import AccountStore


@dataclass(frozen=True)
class Admit:
    account: Account


@dataclass(frozen=True)
class RedirectTo:
    location: str


class AuthorizationGate:
    def __init__(self, store: AccountStore, login_path: str = "/login") -> None:
        self.store = store
        self.login_path = login_path

    def require_authenticated(self, account_id: str | None) -> Admit | RedirectTo:
        """Admit iff account_id is not Anonymous and the account still exists."""
        if account_id is None:
            return RedirectTo(self.login_path)
        account = self.store.get_by_id(account_id)
        if account is None:
            return RedirectTo(self.login_path)
        return Admit(account)
