"""PostgreSQL-backed user repository.

Emails are stored lowercased and matched with ``lower()`` on both sides, so
lookups and the unique index are case-insensitive. A unique violation from
the database becomes ``ConflictError``, which makes ``create`` safe against
concurrent signups across processes.
"""

import logging
from uuid import UUID

from psycopg2 import errors as pg_errors

from auth.exceptions import ConflictError, UserNotFoundError
from auth.types import UserRecord
from clients.postgres_client import PostgresClient

logger = logging.getLogger(__name__)

USERS_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY,
    email TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    role TEXT NOT NULL,
    verified BOOLEAN NOT NULL DEFAULT FALSE,
    first_name TEXT,
    last_name TEXT,
    business_name TEXT,
    tin_number TEXT,
    business_type TEXT,
    phone_number TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS users_email_lower_idx ON users (lower(email));
"""

_COLUMNS = (
    "id", "email", "password_hash", "role", "verified", "first_name", "last_name",
    "business_name", "tin_number", "business_type", "phone_number", "created_at", "updated_at",
)
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM users"


class PostgresUserRepository:
    """UserRepository over the ``users`` table."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def create_schema(self) -> None:
        self._db.execute(USERS_SCHEMA)

    def find_by_email(self, email: str) -> UserRecord | None:
        """Find user by email (case-insensitive)."""
        row = self._db.execute_single(f"{_SELECT} WHERE lower(email) = lower(%s)", (email.strip(),))
        return UserRecord.model_validate(row) if row else None

    def find_by_id(self, user_id: UUID) -> UserRecord | None:
        row = self._db.execute_single(f"{_SELECT} WHERE id = %s", (user_id,))
        return UserRecord.model_validate(row) if row else None

    def create(self, record: UserRecord) -> UserRecord:
        """Insert a new user.

        Raises:
            ConflictError: If the email (case-insensitive) or id is taken.
        """
        values = record.model_dump()
        placeholders = ", ".join(["%s"] * len(_COLUMNS))
        try:
            row = self._db.execute_single(
                f"INSERT INTO users ({', '.join(_COLUMNS)}) VALUES ({placeholders}) "
                f"RETURNING {', '.join(_COLUMNS)}",
                tuple(values[c] for c in _COLUMNS),
            )
        except pg_errors.UniqueViolation as e:
            logger.info("User insert for %s conflicts with an existing user", record.id)
            raise ConflictError("Email is already registered") from e
        return UserRecord.model_validate(row)

    def update(self, record: UserRecord) -> UserRecord:
        """Replace an existing user record.

        Raises:
            UserNotFoundError: If no user has this id.
            ConflictError: If the email was changed to one already taken.
        """
        values = record.model_dump()
        columns = [c for c in _COLUMNS if c not in ("id", "created_at")]
        assignments = ", ".join(f"{c} = %s" for c in columns)
        try:
            row = self._db.execute_single(
                f"UPDATE users SET {assignments} WHERE id = %s RETURNING {', '.join(_COLUMNS)}",
                tuple(values[c] for c in columns) + (record.id,),
            )
        except pg_errors.UniqueViolation as e:
            raise ConflictError("Email is already registered") from e
        if row is None:
            raise UserNotFoundError(f"User {record.id} not found")
        return UserRecord.model_validate(row)
