"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost zero logic). Stores and
strategies do the work; these only own the shape.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass
class Account:
    """A persisted user identity.

    An account is reachable by at least one login path: a username with a
    password credential (local accounts), an external_id (federated
    accounts), or both. The store enforces this with a CHECK constraint.

    password_hash / password_salt are None for federation-only accounts, and
    such accounts can never log in with a password.
    """

    id: str
    username: str | None = None
    password_hash: bytes | None = None
    password_salt: bytes | None = None
    external_id: str | None = None  # identity provider subject id
    display_name: str | None = None  # shown for federated accounts
    secret: str | None = None  # user-authored note, None until submitted
    created_at: str | None = None

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None and self.password_salt is not None

    @property
    def label(self) -> str:
        """Name to show for this account in pages."""
        return self.display_name or self.username or "anonymous"


@dataclass
class Session:
    """A server-side session row.

    token_hash is sha256(raw token). The raw token only ever exists in the
    signed cookie handed to the browser.
    """

    token_hash: str
    account_id: str
    created_at: float
    expires_at: float


class FederationStage(str, Enum):
    """Stages of a single federated authorization attempt.

    INITIATED -> PROFILE_FETCHED -> ACCOUNT_RESOLVED -> SESSION_ESTABLISHED,
    or FAILED from any stage.
    """

    INITIATED = "initiated"
    PROFILE_FETCHED = "profile_fetched"
    ACCOUNT_RESOLVED = "account_resolved"
    SESSION_ESTABLISHED = "session_established"
    FAILED = "failed"
