"""User persistence for authentication.

``UserRepository`` is the seam the session manager talks to. Two local
implementations live here: an in-memory store and a JSON file store for
single-user deployments. Servers use ``auth.database.PostgresUserRepository``.

Writes are atomic per record: callers always get copies, and a write
replaces the whole record under the repository lock.
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol
from uuid import UUID

from auth.exceptions import ConflictError, UserNotFoundError
from auth.types import UserRecord

logger = logging.getLogger(__name__)


class UserRepository(Protocol):
    """Create/find/update user records. Reads see this process's writes."""

    def find_by_email(self, email: str) -> UserRecord | None: ...

    def find_by_id(self, user_id: UUID) -> UserRecord | None: ...

    def create(self, record: UserRecord) -> UserRecord: ...

    def update(self, record: UserRecord) -> UserRecord: ...


class InMemoryUserRepository:
    """Users kept in process memory, indexed by id and lowercased email."""

    def __init__(self):
        self._users: dict[UUID, UserRecord] = {}
        self._ids_by_email: dict[str, UUID] = {}
        self._lock = threading.RLock()

    def find_by_email(self, email: str) -> UserRecord | None:
        """Find user by email (case-insensitive)."""
        with self._lock:
            user_id = self._ids_by_email.get(email.strip().lower())
            if user_id is None:
                return None
            return self._users[user_id].model_copy(deep=True)

    def find_by_id(self, user_id: UUID) -> UserRecord | None:
        """Find user by ID."""
        with self._lock:
            record = self._users.get(user_id)
            return record.model_copy(deep=True) if record else None

    def create(self, record: UserRecord) -> UserRecord:
        """Insert a new user.

        Raises:
            ConflictError: If the email (case-insensitive) or id is taken.
        """
        with self._lock:
            if record.email in self._ids_by_email or record.id in self._users:
                raise ConflictError("Email is already registered")
            self._store(record)
            return record.model_copy(deep=True)

    def update(self, record: UserRecord) -> UserRecord:
        """Replace an existing user record.

        Raises:
            UserNotFoundError: If no user has this id.
            ConflictError: If the email was changed to one already taken.
        """
        with self._lock:
            existing = self._users.get(record.id)
            if existing is None:
                raise UserNotFoundError(f"User {record.id} not found")
            owner = self._ids_by_email.get(record.email)
            if owner is not None and owner != record.id:
                raise ConflictError("Email is already registered")
            self._ids_by_email.pop(existing.email, None)
            self._store(record)
            return record.model_copy(deep=True)

    def _store(self, record: UserRecord) -> None:
        self._users[record.id] = record.model_copy(deep=True)
        self._ids_by_email[record.email] = record.id


class JsonFileUserRepository(InMemoryUserRepository):
    """
    Users persisted to a JSON file.

    The whole table is loaded at construction and rewritten after each write
    through a temp file + os.replace, so a crash never leaves a half-written
    file behind.
    """

    def __init__(self, path: Path | str):
        super().__init__()
        self._path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        with open(self._path, "r", encoding="utf-8") as f:
            rows = json.load(f)
        for row in rows:
            self._store(UserRecord.model_validate(row))
        logger.info("Loaded %d users from %s", len(rows), self._path)

    def _flush(self) -> None:
        rows = [r.model_dump(mode="json") for r in self._users.values()]
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".users-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(rows, f)
            os.replace(tmp_path, self._path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def create(self, record: UserRecord) -> UserRecord:
        with self._lock, self._rollback_on_error():
            created = super().create(record)
            self._flush()
            return created

    def update(self, record: UserRecord) -> UserRecord:
        with self._lock, self._rollback_on_error():
            updated = super().update(record)
            self._flush()
            return updated

    @contextmanager
    def _rollback_on_error(self):
        """Restore the in-memory tables if the write or flush fails."""
        users = dict(self._users)
        ids_by_email = dict(self._ids_by_email)
        try:
            yield
        except BaseException:
            self._users = users
            self._ids_by_email = ids_by_email
            raise
