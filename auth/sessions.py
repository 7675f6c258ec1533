"""
auth/sessions.py -- Server-side session lifecycle.

SessionManager is the one boundary between "this request carries a token" and
"this request belongs to account X". establish() and resolve() are the only
places that map between the two; nothing else reads the sessions table.

Security design:
  - Tokens are secrets.token_urlsafe(32): 256 bits of entropy.
  - Only sha256(token) is stored. A leaked database does not yield usable
    cookies. A fast hash is enough because the token is high-entropy.
  - Every establish() mints a new token. Nothing is reused or extended, so a
    token planted before login never becomes authenticated.
  - Lifetime is fixed at creation (no sliding renewal on use).

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import time
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Column, Float, MetaData, String, Table
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError

from auth.errors import BackendUnavailable
from auth.models import Session
from auth.store import make_engine

logger = logging.getLogger("secretnotes.auth.sessions")

_metadata = MetaData()

_sessions = Table(
    "sessions",
    _metadata,
    Column("token_hash", String(64), primary_key=True),  # sha256 hex of the raw token
    Column("account_id", String(32), nullable=False, index=True),
    Column("created_at", Float, nullable=False),
    Column("expires_at", Float, nullable=False),
)


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionManager:
    """Create, resolve, and destroy sessions.

    Usage:
        sessions = SessionManager("sqlite:///secretnotes.db", expire_seconds=3600)
        token = sessions.establish(account.id)
        sessions.resolve(token)   # -> account.id
        sessions.destroy(token)
        sessions.resolve(token)   # -> None
    """

    def __init__(self, db_url: str, expire_seconds: int = 3600, timeout: float = 5.0) -> None:
        self.expire_seconds = expire_seconds
        self.engine: Engine = make_engine(db_url, timeout)
        _metadata.create_all(self.engine)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except OperationalError as exc:
            logger.error("Session store unavailable: %s", exc.__class__.__name__)
            raise BackendUnavailable("session store unavailable") from exc

    def establish(self, account_id: str) -> str:
        """Bind a brand-new token to account_id and return the raw token.

        Expired rows are swept in the same transaction, so abandoned sessions
        do not accumulate between restarts.
        """
        token = secrets.token_urlsafe(32)
        now = time.time()
        with self._connect() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.expires_at <= now))
            conn.execute(
                _sessions.insert().values(
                    token_hash=_hash_token(token),
                    account_id=account_id,
                    created_at=now,
                    expires_at=now + self.expire_seconds,
                )
            )
            conn.commit()
        return token

    def resolve(self, token: str | None) -> str | None:
        """Return the account id bound to token, or None for Anonymous.

        Missing, unknown, and expired tokens all resolve to None; this is not
        an error. An expired row is deleted when it is found.
        """
        if not token:
            return None
        session = self._get(_hash_token(token))
        if session is None:
            return None
        if session.expires_at <= time.time():
            self._delete(session.token_hash)
            return None
        return session.account_id

    def destroy(self, token: str | None) -> None:
        """End a session. Unknown or already-destroyed tokens are a no-op."""
        if token:
            self._delete(_hash_token(token))

    def purge_expired(self) -> int:
        """Delete every expired session. Returns number of rows removed."""
        with self._connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= time.time()))
            conn.commit()
        return result.rowcount

    def _get(self, token_hash: str) -> Session | None:
        with self._connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token_hash == token_hash)).fetchone()
        if row is None:
            return None
        return Session(
            token_hash=row.token_hash,
            account_id=row.account_id,
            created_at=row.created_at,
            expires_at=row.expires_at,
        )

    def _delete(self, token_hash: str) -> None:
        with self._connect() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.token_hash == token_hash))
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()
