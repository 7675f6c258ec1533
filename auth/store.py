"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. Route and strategy code never touches SQL.

Concurrency:
  Uniqueness of username and external_id is enforced by UNIQUE constraints in
  the database, never by a read followed by a write. Two requests registering
  the same username race on the INSERT; the loser gets IntegrityError, which
  surfaces as AlreadyExists. find_or_create_by_external_id() turns the same
  IntegrityError into a re-read of the winner's row.

  UNIQUE columns admit any number of NULLs in SQLite and PostgreSQL, so a
  local-only account (external_id NULL) never collides with another one.

  Each statement runs on its own short-lived connection. Keeping the initial
  read and the INSERT in separate transactions means a writer never has to
  upgrade a stale read snapshot, which SQLite refuses without waiting.

Backend failures (OperationalError: locked, unreachable, disk) are logged and
re-raised as BackendUnavailable. The engine-level timeout is the only timeout;
nothing in here retries on its own.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, OperationalError

from auth.errors import AlreadyExists, BackendUnavailable, NotFound
from auth.models import Account

logger = logging.getLogger("secretnotes.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    # Insertion order for list_with_secret(); never exposed.
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(32), nullable=False, unique=True),
    Column("username", String(255), unique=True),
    Column("password_hash", LargeBinary),  # NULL for federation-only accounts
    Column("password_salt", LargeBinary),
    Column("external_id", String(255), unique=True),  # provider subject id
    Column("display_name", String(255)),
    Column("secret", Text),
    Column("created_at", String(32), nullable=False),
    CheckConstraint(
        "(username IS NOT NULL AND password_hash IS NOT NULL AND password_salt IS NOT NULL)"
        " OR external_id IS NOT NULL",
        name="ck_accounts_login_path",
    ),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases silently keep their own
    journal mode.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str, timeout: float = 5.0) -> Engine:
    """Create an engine with the backend-call timeout applied.

    For SQLite the timeout is how long a writer waits on a lock held by a
    concurrent writer before OperationalError("database is locked").
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = timeout
    elif db_url.startswith("postgresql"):
        connect_args["connect_timeout"] = int(timeout)
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore("sqlite:///secretnotes.db")
        account = store.create_local("alice", password_hash, password_salt)
        store.update_secret(account.id, "I still sleep with a night light")
        store.close()
    """

    def __init__(self, db_url: str, timeout: float = 5.0) -> None:
        self.engine: Engine = make_engine(db_url, timeout)
        _metadata.create_all(self.engine)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except OperationalError as exc:
            logger.error("Account store unavailable: %s", exc.__class__.__name__)
            raise BackendUnavailable("account store unavailable") from exc

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, account_id: str) -> Account | None:
        """Look up an account by its opaque id. Returns None if not found."""
        return self._get_one(_accounts.c.id == account_id)

    def get_by_username(self, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive). Returns None if not found."""
        return self._get_one(_accounts.c.username == username)

    def get_by_external_id(self, external_id: str) -> Account | None:
        return self._get_one(_accounts.c.external_id == external_id)

    def _get_one(self, clause) -> Account | None:
        with self._connect() as conn:
            row = conn.execute(_accounts.select().where(clause)).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_with_secret(self) -> list[Account]:
        """Return every account that has submitted a secret, oldest first.

        The list is a snapshot taken at call time.
        """
        with self._connect() as conn:
            rows = conn.execute(
                _accounts.select().where(_accounts.c.secret.is_not(None)).order_by(_accounts.c.seq)
            ).fetchall()
        return [_row_to_account(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_local(self, username: str, password_hash: bytes, password_salt: bytes) -> Account:
        """Insert a local (password) account and return it.

        Raises AlreadyExists if the username is taken. The UNIQUE constraint
        makes the check and the insert a single atomic statement.
        """
        account = Account(
            id=uuid.uuid4().hex,
            username=username,
            password_hash=password_hash,
            password_salt=password_salt,
            created_at=_now_iso(),
        )
        try:
            self._insert(account)
        except IntegrityError as exc:
            raise AlreadyExists(f"username {username!r} is already registered") from exc
        logger.info("Local account created (id=%s)", account.id)
        return account

    def find_or_create_by_external_id(self, external_id: str, display_name: str | None) -> Account:
        """Return the account bound to external_id, creating it if absent.

        At most one account is ever created per external_id. When two callers
        race on the first login, both INSERT; the loser's IntegrityError is
        answered by re-reading the winner's row once.
        """
        existing = self.get_by_external_id(external_id)
        if existing is not None:
            return existing

        account = Account(
            id=uuid.uuid4().hex,
            external_id=external_id,
            display_name=display_name,
            created_at=_now_iso(),
        )
        try:
            self._insert(account)
        except IntegrityError as exc:
            winner = self.get_by_external_id(external_id)
            if winner is None:
                raise AlreadyExists(f"could not bind external id {external_id!r}") from exc
            logger.info("Concurrent first login resolved to existing account (id=%s)", winner.id)
            return winner
        logger.info("Federated account created (id=%s)", account.id)
        return account

    def _insert(self, account: Account) -> None:
        with self._connect() as conn:
            conn.execute(
                _accounts.insert().values(
                    id=account.id,
                    username=account.username,
                    password_hash=account.password_hash,
                    password_salt=account.password_salt,
                    external_id=account.external_id,
                    display_name=account.display_name,
                    secret=account.secret,
                    created_at=account.created_at,
                )
            )
            conn.commit()

    def update_secret(self, account_id: str, secret: str) -> None:
        """Overwrite the secret of one account. Raises NotFound if the id does not exist.

        The caller must pass the id resolved from its own session, never an id
        taken from the request.
        """
        with self._connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(secret=secret))
            conn.commit()
        if result.rowcount == 0:
            raise NotFound(f"account {account_id!r} does not exist")

    def delete_account(self, account_id: str) -> bool:
        """Permanently delete an account. Returns True if deleted, False if not found.

        Sessions bound to the account are left in place; the authorization
        gate re-checks account existence on every request, so they stop
        admitting immediately.
        """
        with self._connect() as conn:
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the backend answers a trivial query."""
        try:
            with self._connect() as conn:
                conn.execute(text("SELECT 1"))
        except BackendUnavailable:
            return False
        return True

    def count(self) -> int:
        """Return the number of accounts. Logged once at startup."""
        with self._connect() as conn:
            return conn.execute(select(func.count()).select_from(_accounts)).scalar() or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        password_salt=row.password_salt,
        external_id=row.external_id,
        display_name=row.display_name,
        secret=row.secret,
        created_at=row.created_at,
    )
