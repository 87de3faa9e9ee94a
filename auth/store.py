"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Service and route
code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Default reads never return the password hash or the TOTP secret. The
  mapper blanks both unless the caller passes include_password=True or
  include_secret=True, so a User fetched for display cannot leak them.

  Email uniqueness is enforced by a UNIQUE constraint. Two concurrent signups
  for the same address race at the INSERT; the loser gets IntegrityError.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from auth.models import User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("email", String(254), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("is_email_verified", Integer, nullable=False, server_default="0"),
    Column("two_factor_enabled", Integer, nullable=False, server_default="0"),
    Column("two_factor_secret", String(64)),  # base32, NULL until 2FA setup
    Column("created_at", String(32), nullable=False),
)

# Columns stored as 0/1 in SQLite; update_user() converts bools for these.
_BOOL_FIELDS = ("is_email_verified", "two_factor_enabled")

_UPDATABLE_FIELDS = {
    "name",
    "hashed_password",
    "role",
    "is_email_verified",
    "two_factor_enabled",
    "two_factor_secret",
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///authgate.db")
        uid = store.create_user(User(name="Ann", email="a@x.com", hashed_password=hash_password("secret12")))
        user = store.get_by_email("a@x.com", include_password=True)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    role=user.role,
                    is_email_verified=1 if user.is_email_verified else 0,
                    two_factor_enabled=1 if user.two_factor_enabled else 0,
                    two_factor_secret=user.two_factor_secret,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: name, hashed_password, role, is_email_verified,
        two_factor_enabled, two_factor_secret. Unknown fields raise ValueError.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return False
        for name in _BOOL_FIELDS:
            if name in fields:
                fields[name] = 1 if fields[name] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int, *, include_password: bool = False, include_secret: bool = False) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        if row is None:
            return None
        return _row_to_user(row, include_password=include_password, include_secret=include_secret)

    def get_by_email(
        self, email: str, *, include_password: bool = False, include_secret: bool = False
    ) -> User | None:
        """Look up a user by normalized email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        if row is None:
            return None
        return _row_to_user(row, include_password=include_password, include_secret=include_secret)

    def email_exists(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().with_only_columns(_users.c.id).where(_users.c.email == email)).fetchone()
        return row is not None

    def list_users(self) -> list[User]:
        """Return all users ordered by id. Secrets are never included."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def ping(self) -> bool:
        """Cheap connectivity check for the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(_users.select().with_only_columns(_users.c.id).limit(1)).fetchone()
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, *, include_password: bool = False, include_secret: bool = False) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        role=row.role,
        hashed_password=row.hashed_password if include_password else None,
        is_email_verified=bool(row.is_email_verified),
        two_factor_enabled=bool(row.two_factor_enabled),
        two_factor_secret=row.two_factor_secret if include_secret else None,
        created_at=row.created_at,
    )
