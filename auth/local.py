"""
auth/local.py -- Username/password registration and login.

LocalAuthStrategy composes AccountStore and PasswordHasher. It returns the
Account on success and raises on failure; it never starts a session. The
route layer establishes a session only after login() or register() returned.

Username enumeration:
  Unknown username, federation-only account, and wrong password all raise the
  same InvalidCredentials. All three paths also cost one bcrypt evaluation:
  when there is no stored credential, the password is checked against a
  dummy digest computed once at construction, so response time does not
  reveal whether the username exists.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging

from auth.errors import InvalidCredentials, ValidationError
from auth.models import Account
from auth.passwords import MAX_PASSWORD_BYTES, PasswordHasher
from auth.store import AccountStore

logger = logging.getLogger("secretnotes.auth")


class LocalAuthStrategy:
    def __init__(self, store: AccountStore, hasher: PasswordHasher) -> None:
        self.store = store
        self.hasher = hasher
        self._dummy_hash, self._dummy_salt = hasher.hash("secretnotes_timing_dummy")

    def register(self, username: str, password: str) -> Account:
        """Create a local account.

        Raises ValidationError for an empty username or password, or a
        password bcrypt cannot represent. AlreadyExists from the store
        propagates unchanged.
        """
        username = (username or "").strip()
        if not username:
            raise ValidationError("username", "Username is required.")
        if not password:
            raise ValidationError("password", "Password is required.")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError("password", f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")

        digest, salt = self.hasher.hash(password)
        return self.store.create_local(username, digest, salt)

    def login(self, username: str, password: str) -> Account:
        """Return the account for a correct username/password pair.

        Raises InvalidCredentials for every kind of failure. An account without
        a password credential is never authenticated here, whatever is typed.
        """
        username = (username or "").strip()
        account = self.store.get_by_username(username) if username else None
        if account is None or not account.has_password:
            # Equalize timing -- do NOT return before running bcrypt
            self.hasher.verify(password or "", self._dummy_hash, self._dummy_salt)
            raise InvalidCredentials()
        if not self.hasher.verify(password or "", account.password_hash, account.password_salt):
            raise InvalidCredentials()
        return account
