from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from resumematch.db.models import KVEntry
from resumematch.errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def list_keys(self, prefix: str) -> list[str]: ...

    def purge_expired(self) -> int: ...


def _naive_utcnow() -> datetime:
    # expires_at is stored as naive UTC so SQLite and server backends compare alike
    return datetime.now(UTC).replace(tzinfo=None)


class SqlKeyValueStore:
    """Key-value substrate on top of a single SQLAlchemy table.

    Every call runs in its own short session so callers never share ORM state.
    Entries past ``expires_at`` read as absent and are removed lazily.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get(self, key: str) -> str | None:
        try:
            with self.session_factory() as session:
                entry = session.get(KVEntry, key)
                if entry is None:
                    return None
                if entry.expires_at is not None and entry.expires_at <= _naive_utcnow():
                    session.delete(entry)
                    session.commit()
                    return None
                return entry.value
        except SQLAlchemyError as exc:
            logger.error("KV get failed key=%s error=%s", key, exc)
            raise StorageError(f"failed to read {key}") from exc

    def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        expires_at = _naive_utcnow() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        try:
            with self.session_factory() as session:
                entry = session.get(KVEntry, key)
                if entry is None:
                    session.add(KVEntry(key=key, value=value, expires_at=expires_at))
                else:
                    entry.value = value
                    entry.expires_at = expires_at
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("KV put failed key=%s error=%s", key, exc)
            raise StorageError(f"failed to write {key}") from exc

    def delete(self, key: str) -> None:
        try:
            with self.session_factory() as session:
                session.execute(delete(KVEntry).where(KVEntry.key == key))
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("KV delete failed key=%s error=%s", key, exc)
            raise StorageError(f"failed to delete {key}") from exc

    def list_keys(self, prefix: str) -> list[str]:
        now = _naive_utcnow()
        statement = (
            select(KVEntry.key)
            .where(KVEntry.key.startswith(prefix, autoescape=True))
            .where((KVEntry.expires_at.is_(None)) | (KVEntry.expires_at > now))
            .order_by(KVEntry.key)
        )
        try:
            with self.session_factory() as session:
                return list(session.scalars(statement).all())
        except SQLAlchemyError as exc:
            logger.error("KV list failed prefix=%s error=%s", prefix, exc)
            raise StorageError(f"failed to list keys under {prefix}") from exc

    def purge_expired(self) -> int:
        try:
            with self.session_factory() as session:
                result = session.execute(
                    delete(KVEntry).where(KVEntry.expires_at.is_not(None), KVEntry.expires_at <= _naive_utcnow())
                )
                session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as exc:
            logger.error("KV purge failed error=%s", exc)
            raise StorageError("failed to purge expired keys") from exc
