"""
auth/store.py -- SQLAlchemy Core persistence layer for the User entity.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user is
the mapper. Flow and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE constraints on email, google_id, verification_token and reset_token
  are the race arbiter for concurrent signups / federated logins / OTP
  requests. create_user() and update_user() let sqlalchemy.exc.IntegrityError
  propagate so the flow layer can map it to AccountExists / Conflict. NULLs are
  distinct under UNIQUE in both SQLite and PostgreSQL, so any number of
  accounts may have no Google link or no pending token.

  Consuming a transient secret is a conditional UPDATE (WHERE id = :id AND
  <secret> = :value). Two requests racing to consume the same secret cannot
  both succeed -- the loser sees rowcount 0.

Timestamps are ISO 8601 UTC strings. Expiry columns are mapped to aware
datetime objects on read.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(191), nullable=False),
    Column("email", String(191), nullable=False, unique=True),
    Column("password_hash", Text),  # NULL for Google / OTP-only accounts
    Column("google_id", String(191), unique=True),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("otp_code", String(6)),
    Column("otp_expires_at", String(32)),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("verification_token", String(64), unique=True),
    Column("reset_token", String(64), unique=True),
    Column("reset_expires_at", String(32)),
    Column("image", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns update_user() accepts. id, email and created_at are
# absent from the general path; email changes go through update_email().
_MUTABLE_FIELDS = {
    "name",
    "password_hash",
    "google_id",
    "role",
    "is_verified",
    "verification_token",
    "image",
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety (per connection)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user_id = store.create_user(User(name="Ada", email="ada@example.com"))
        user = store.get_by_email("ada@example.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises sqlalchemy.exc.IntegrityError if the email (or Google subject,
        or a token) is already taken. Callers translate that into
        AccountExists / Conflict -- it is the expected outcome of two
        concurrent requests for the same email.
        """
        user_id = uuid.uuid4().hex
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    name=user.name,
                    email=user.email,
                    password_hash=user.password_hash,
                    google_id=user.google_id,
                    role=user.role,
                    otp_code=user.otp_code,
                    otp_expires_at=_to_iso(user.otp_expires_at),
                    is_verified=1 if user.is_verified else 0,
                    verification_token=user.verification_token,
                    reset_token=user.reset_token,
                    reset_expires_at=_to_iso(user.reset_expires_at),
                    image=user.image,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        return self._fetch_one(_users.c.id == user_id)

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive, as stored)."""
        return self._fetch_one(_users.c.email == email)

    def get_by_google_id(self, google_id: str) -> User | None:
        return self._fetch_one(_users.c.google_id == google_id)

    def get_by_verification_token(self, token: str) -> User | None:
        return self._fetch_one(_users.c.verification_token == token)

    def get_by_reset_token(self, token: str) -> User | None:
        """Look up a user by reset token. Expiry is checked by the caller."""
        return self._fetch_one(_users.c.reset_token == token)

    def list_by_role(self, role: str) -> list[User]:
        """Return every user with the given role, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _users.select().where(_users.c.role == role).order_by(_users.c.created_at.desc())
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user and stamp updated_at.

        Accepted fields: name, password_hash, google_id, role, is_verified,
        verification_token, image. is_verified is passed as bool and stored as
        0/1. Unknown field names raise ValueError rather than being ignored.

        Returns True if a row was updated, False if user_id was not found.
        Raises IntegrityError if google_id collides with another account.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "is_verified" in fields:
            fields["is_verified"] = 1 if fields["is_verified"] else 0
        return self._update(_users.c.id == user_id, **fields)

    def update_email(self, user_id: str, email: str) -> bool:
        """Change a user's email. Raises IntegrityError if it is taken."""
        return self._update(_users.c.id == user_id, email=email)

    def set_otp(self, user_id: str, code: str, expires_at: datetime) -> bool:
        """Store an OTP code and its expiry together, replacing any prior pair."""
        return self._update(_users.c.id == user_id, otp_code=code, otp_expires_at=_to_iso(expires_at))

    def consume_otp(self, user_id: str, code: str) -> bool:
        """Clear the OTP pair and mark the account verified.

        Conditional on the stored code still being `code`; returns False if a
        concurrent request already consumed or replaced it.
        """
        return self._update(
            (_users.c.id == user_id) & (_users.c.otp_code == code),
            otp_code=None,
            otp_expires_at=None,
            is_verified=1,
        )

    def set_reset_token(self, user_id: str, token: str, expires_at: datetime) -> bool:
        """Store a reset token and its expiry together."""
        return self._update(_users.c.id == user_id, reset_token=token, reset_expires_at=_to_iso(expires_at))

    def consume_reset_token(self, user_id: str, token: str, password_hash: str) -> bool:
        """Set a new password, clear the reset pair and mark the account verified.

        Conditional on the stored reset token still being `token`.
        """
        return self._update(
            (_users.c.id == user_id) & (_users.c.reset_token == token),
            password_hash=password_hash,
            reset_token=None,
            reset_expires_at=None,
            is_verified=1,
        )

    def consume_verification_token(self, user_id: str, token: str) -> bool:
        """Mark the account verified and clear its verification token.

        Conditional on the stored verification token still being `token`.
        """
        return self._update(
            (_users.c.id == user_id) & (_users.c.verification_token == token),
            verification_token=None,
            is_verified=1,
        )

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user record. Returns True if deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch_one(self, condition) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(condition)).fetchone()
        return _row_to_user(row) if row is not None else None

    def _update(self, condition, **values) -> bool:
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(condition).values(**values))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        google_id=row.google_id,
        role=row.role,
        otp_code=row.otp_code,
        otp_expires_at=_from_iso(row.otp_expires_at),
        is_verified=bool(row.is_verified),
        verification_token=row.verification_token,
        reset_token=row.reset_token,
        reset_expires_at=_from_iso(row.reset_expires_at),
        image=row.image,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
