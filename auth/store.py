"""
auth/store.py -- SQLAlchemy Core persistence layer for user credentials.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Services and routes never touch SQL directly.

CredentialStore is the contract the services depend on. UserStore is the
production implementation; anything with the same methods can stand in.

Security:
  All queries use bound parameters. No f-strings in SQL.

  The database, not the services, is the arbiter of races:
    - UNIQUE(email) decides concurrent registrations. The violation is
      re-raised as DuplicateEmailError so callers need not know SQLAlchemy.
    - issue_reset_token / consume_reset_token / clear_reset_token are single
      conditional UPDATEs. Their row count tells the caller whether it won.

  reset_token and reset_token_expiry are both NULL or both set. A CHECK
  constraint enforces it and _validate_patch refuses patches that would
  write only one of them.

Timestamps:
  reset_token_expiry is stored as naive UTC in a DateTime column so that
  "expiry >= now" comparisons run in SQL with a fixed-width format.
  created_at is display-only and kept as an ISO 8601 string.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import UserCredential, UserProfile, normalize_email

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),  # always normalized
    Column("password_hash", Text, nullable=False),
    Column("name", String(100)),
    Column("postal_code", String(8)),
    Column("phone", String(15)),
    Column("reset_token", String(64), index=True),
    Column("reset_token_expiry", DateTime),  # naive UTC
    Column("created_at", String(32), nullable=False),
    CheckConstraint(
        "(reset_token IS NULL AND reset_token_expiry IS NULL) "
        "OR (reset_token IS NOT NULL AND reset_token_expiry IS NOT NULL)",
        name="ck_users_reset_pair",
    ),
)

# Columns that update_by_id / update_by_email may touch. id, email and
# created_at are immutable after creation.
_MUTABLE_FIELDS = frozenset({"password_hash", "name", "postal_code", "phone", "reset_token", "reset_token_expiry"})


class DuplicateEmailError(Exception):
    """create() hit the UNIQUE(email) constraint."""


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class CredentialStore(Protocol):
    """Storage operations the auth services rely on."""

    def find_by_email(self, email: str) -> UserCredential | None: ...

    def find_by_id(self, user_id: str) -> UserCredential | None: ...

    def create(self, email: str, password_hash: str, profile: UserProfile | None = None) -> UserCredential: ...

    def update_by_email(self, email: str, **fields) -> bool: ...

    def update_by_id(self, user_id: str, **fields) -> bool: ...

    def find_by_valid_reset_token(self, token: str, now: datetime) -> UserCredential | None: ...

    def issue_reset_token(self, user_id: str, token: str, expires_at: datetime, now: datetime) -> bool: ...

    def consume_reset_token(self, user_id: str, token: str, password_hash: str, now: datetime) -> bool: ...

    def clear_reset_token(self, user_id: str, token: str) -> bool: ...

    def list_users(self) -> list[UserCredential]: ...


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_db_time(value: datetime) -> datetime:
    """Aware datetime -> naive UTC for storage and SQL comparison."""
    if value.tzinfo is None:
        raise ValueError("Timestamps passed to the store must be timezone-aware.")
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_time(value: datetime | None) -> datetime | None:
    return value.replace(tzinfo=timezone.utc) if value is not None else None


def _validate_patch(fields: dict) -> dict:
    unknown = set(fields) - _MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown or immutable user fields: {sorted(unknown)!r}")
    if ("reset_token" in fields) != ("reset_token_expiry" in fields):
        raise ValueError("reset_token and reset_token_expiry must be updated together.")
    if "reset_token" in fields and (fields["reset_token"] is None) != (fields["reset_token_expiry"] is None):
        raise ValueError("reset_token and reset_token_expiry must both be set or both be None.")
    values = dict(fields)
    if values.get("reset_token_expiry") is not None:
        values["reset_token_expiry"] = _to_db_time(values["reset_token_expiry"])
    return values


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """SQLAlchemy Core repository for UserCredential records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create("a@x.com", hasher.hash("Abc12345!"))
        store.find_by_email("A@X.com")  # same record
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> UserCredential | None:
        """Case-insensitive lookup. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: str) -> UserCredential | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[UserCredential]:
        """Return all users ordered by email."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def find_by_valid_reset_token(self, token: str, now: datetime) -> UserCredential | None:
        """Return the user holding exactly this reset token, if it has not expired.

        Expiry is inclusive: a token is still usable at the instant
        now == reset_token_expiry.
        """
        if not token:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(
                    (_users.c.reset_token == token) & (_users.c.reset_token_expiry >= _to_db_time(now))
                )
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, email: str, password_hash: str, profile: UserProfile | None = None) -> UserCredential:
        """Insert a new user and return the stored record.

        Raises DuplicateEmailError if the (normalized) email is already taken,
        including when a concurrent request inserted it after the caller's
        existence check.
        """
        profile = profile or UserProfile()
        user = UserCredential(
            id=uuid.uuid4().hex,
            email=normalize_email(email),
            password_hash=password_hash,
            name=profile.name,
            postal_code=profile.postal_code,
            phone=profile.phone,
            created_at=_now_iso(),
        )
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user.id,
                        email=user.email,
                        password_hash=user.password_hash,
                        name=user.name,
                        postal_code=user.postal_code,
                        phone=user.phone,
                        created_at=user.created_at,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateEmailError(user.email) from exc
        return user

    def update_by_id(self, user_id: str, **fields) -> bool:
        """Update mutable fields on a user. Returns True if a row was updated."""
        values = _validate_patch(fields)
        if not values:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def update_by_email(self, email: str, **fields) -> bool:
        """Same as update_by_id, keyed on the normalized email."""
        values = _validate_patch(fields)
        if not values:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.email == normalize_email(email)).values(**values)
            )
            conn.commit()
        return result.rowcount > 0

    def issue_reset_token(self, user_id: str, token: str, expires_at: datetime, now: datetime) -> bool:
        """Store a reset token unless a live one is already present.

        A pending token blocks a new one only while its expiry is still ahead
        of `now`; from the expiry instant on it may be replaced, matching the
        RateLimited check in PasswordRecoveryService.

        Returns False when another request stored a token that is still
        pending -- the caller lost the race and should report RateLimited.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(
                    (_users.c.id == user_id)
                    & (_users.c.reset_token_expiry.is_(None) | (_users.c.reset_token_expiry <= _to_db_time(now)))
                )
                .values(reset_token=token, reset_token_expiry=_to_db_time(expires_at))
            )
            conn.commit()
        return result.rowcount > 0

    def consume_reset_token(self, user_id: str, token: str, password_hash: str, now: datetime) -> bool:
        """Set the new password and clear the token, only if the token still matches and is live.

        The WHERE clause is the single-use guarantee: of two concurrent
        requests carrying the same token, exactly one sees rowcount == 1.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(
                    (_users.c.id == user_id)
                    & (_users.c.reset_token == token)
                    & (_users.c.reset_token_expiry >= _to_db_time(now))
                )
                .values(password_hash=password_hash, reset_token=None, reset_token_expiry=None)
            )
            conn.commit()
        return result.rowcount > 0

    def clear_reset_token(self, user_id: str, token: str) -> bool:
        """Drop a specific reset token (e.g. the email carrying it was never sent)."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.reset_token == token))
                .values(reset_token=None, reset_token_expiry=None)
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> UserCredential:
    return UserCredential(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        name=row.name,
        postal_code=row.postal_code,
        phone=row.phone,
        reset_token=row.reset_token,
        reset_token_expiry=_from_db_time(row.reset_token_expiry),
        created_at=row.created_at,
    )
