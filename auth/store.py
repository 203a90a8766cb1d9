"""
auth/store.py -- SQLAlchemy Core persistence layer for user credentials.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Route and
middleware code never touches SQL directly.

Uniqueness of email is enforced twice:
  1. append() holds a process-wide lock across check-then-insert and runs both
     inside one transaction, so two concurrent registrations in this process
     are serialized and the second sees the first.
  2. The UNIQUE constraint on users.email catches writers outside this process
     (e.g. the import CLI running next to the server). IntegrityError is
     translated to ConflictError.

Reads always go to the database; nothing is cached across requests.

Security:
  All queries use bound parameters. No f-strings in SQL.
  authenticate() always runs exactly one bcrypt verification, against a dummy
  hash when the email is unknown, so response time does not reveal whether an
  account exists.

Layer rule: no imports from api/, core/ or resources/.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import ConflictError, InternalError
from auth.models import User
from auth.passwords import PasswordHasher

logger = logging.getLogger("authgate.store")

_DEFAULT_DB_URL = "sqlite:///authgate.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    # Millisecond creation timestamps, so BigInteger rather than Integer.
    Column("id", BigInteger, primary_key=True, autoincrement=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# SQLite tuning
# ---------------------------------------------------------------------------


def set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine with the connect args and listeners SQLite needs."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", set_wal_mode)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into InternalError, keeping the cause chained."""
    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as exc:
        raise InternalError(f"credential store {operation} failed") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///authgate.db", PasswordHasher())
        user = store.append(User(email="a@x.com", name="A", password_hash=hasher.hash("p1")))
        store.verify_credentials("a@x.com", "p1")   # True
        store.close()
    """

    # One writer at a time across every UserStore in the process.
    _write_lock = threading.Lock()

    def __init__(self, db_url: str = _DEFAULT_DB_URL, hasher: PasswordHasher | None = None) -> None:
        self.hasher = hasher or PasswordHasher()
        self.engine: Engine = make_engine(db_url)
        # Failure here is a startup error: the gateway cannot run without its store.
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with _storage_errors("read"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def exists(self, email: str) -> bool:
        return self.find_by_email(email) is not None

    def count(self) -> int:
        with _storage_errors("read"), self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def authenticate(self, email: str, password: str) -> User | None:
        """Return the User if the password matches, None otherwise.

        Unknown email and wrong password are indistinguishable to the caller,
        both in return value and in time spent.
        """
        user = self.find_by_email(email)
        if user is None:
            self.hasher.burn(password)
            return None
        if not self.hasher.verify(password, user.password_hash):
            return None
        return user

    def verify_credentials(self, email: str, password: str) -> bool:
        return self.authenticate(email, password) is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, user: User) -> User:
        """Insert a new user and return it with id and created_at filled in.

        The id is the creation time in milliseconds, bumped past the current
        maximum when two registrations land in the same millisecond.

        Raises ConflictError if the email is already registered.
        """
        with self._write_lock, _storage_errors("write"):
            try:
                with self.engine.begin() as conn:
                    taken = conn.execute(_users.select().where(_users.c.email == user.email)).fetchone()
                    if taken is not None:
                        raise ConflictError("This email is already in use")
                    max_id = conn.execute(select(func.max(_users.c.id))).scalar()
                    new_id = max(int(time.time() * 1000), (max_id or 0) + 1)
                    created_at = user.created_at or _now_iso()
                    conn.execute(
                        _users.insert().values(
                            id=new_id,
                            email=user.email,
                            name=user.name,
                            password_hash=user.password_hash,
                            created_at=created_at,
                        )
                    )
            except IntegrityError as exc:
                raise ConflictError("This email is already in use") from exc
        logger.info("Registered user id=%d", new_id)
        return User(
            id=new_id,
            email=user.email,
            name=user.name,
            password_hash=user.password_hash,
            created_at=created_at,
        )

    def import_user(self, user: User) -> bool:
        """Insert a user that already carries its id and hash.

        Used by the import CLI for records exported from another store.
        Returns False (and writes nothing) if the email or id is already taken.
        """
        if user.id is None:
            raise ValueError("import_user requires a user id")
        with self._write_lock, _storage_errors("write"):
            try:
                with self.engine.begin() as conn:
                    conn.execute(
                        _users.insert().values(
                            id=user.id,
                            email=user.email,
                            name=user.name,
                            password_hash=user.password_hash,
                            created_at=user.created_at or _now_iso(),
                        )
                    )
            except IntegrityError:
                return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        created_at=row.created_at,
    )
