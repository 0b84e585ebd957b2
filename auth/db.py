"""
auth/db.py -- SQLAlchemy Core schema and engine factory for the auth core.

The credential store and the refresh-token ledger share one Engine. The engine
is created once (in the API lifespan or the CLI) and passed explicitly into
each component constructor -- there is no module-level connection singleton.

Constraints that carry security invariants live in the schema, not in code:
  users.email UNIQUE          -- concurrent sign-ups with one email: one wins
  vendors.user_id UNIQUE      -- at most one vendor profile per user
  clients.user_id UNIQUE      -- at most one client profile per user
  refresh_tokens.token UNIQUE -- a token value maps to exactly one row

Timestamps are ISO 8601 UTC strings, matching the rest of the repository.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from auth.errors import StoreUnavailable

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(20), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

vendors = Table(
    "vendors",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("company_name", String(255), nullable=False),
    Column("phone", String(20), nullable=False),
    Column("address", Text, nullable=False),
    Column("npwp", String(32)),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("registration_type", String(30), nullable=False, server_default="self_register"),
    Column("created_at", String(32), nullable=False),
)

clients = Table(
    "clients",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("company_name", String(255)),
    Column("contact_person", String(255), nullable=False),
    Column("phone", String(20), nullable=False),
    Column("address", Text),
    Column("created_at", String(32), nullable=False),
)

refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("token", Text, nullable=False, unique=True),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    sqlite_autoincrement=True,
)


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign keys on every new SQLite connection.

    SQLite PRAGMAs are per-connection, so they are set on connect rather than
    once at engine creation. Foreign keys are off by default in SQLite.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def create_auth_engine(db_url: str) -> Engine:
    """Create the shared engine and make sure all tables exist.

    Usage:
        engine = create_auth_engine("sqlite:///marketplace_auth.db")
        store = CredentialStore(engine)
        ledger = RefreshTokenLedger(engine, ttl=timedelta(days=7))
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    with store_errors():
        metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return now_utc().isoformat()


def parse_iso(value: str) -> datetime:
    """Parse a stored timestamp; naive values are treated as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@contextmanager
def store_errors() -> Iterator[None]:
    """Translate transport-level database failures into StoreUnavailable.

    OperationalError covers lost connections, refused connections and lock
    timeouts. Constraint violations (IntegrityError) are left to the caller,
    which knows which constraint it was exercising.
    """
    try:
        yield
    except OperationalError as exc:
        raise StoreUnavailable() from exc
