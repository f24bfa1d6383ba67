from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from resumematch.db.models import EventLog
from resumematch.errors import StorageError
from resumematch.types import EventCount, EventLogEntry, LogLevel, LogSummary

logger = logging.getLogger(__name__)

REQUEST_CREATED = "REQUEST_CREATED"
DOCUMENT_ADDED = "DOCUMENT_ADDED"
ANALYSIS_STARTED = "ANALYSIS_STARTED"
ANALYSIS_COMPLETED = "ANALYSIS_COMPLETED"
ANALYSIS_FAILED = "ANALYSIS_FAILED"
REQUEST_CANCELLED = "REQUEST_CANCELLED"

TOP_EVENTS = 5


def _naive_utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class EventLogService:
    """Persistent trail of request lifecycle events, read back by admins.

    Writing an event never fails the caller: a database error is logged and dropped.
    Reads raise ``StorageError``.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def log(
        self,
        level: LogLevel,
        event_type: str,
        message: str,
        *,
        owner_id: str | None = None,
        context_id: str | None = None,
        data: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        event = EventLog(
            logged_at=_naive_utcnow(),
            level=level,
            event_type=event_type,
            owner_id=owner_id,
            context_id=context_id,
            message=message,
            data_json=data or {},
            error_details=error,
        )
        try:
            with self.session_factory() as session:
                session.add(event)
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("Event log write failed event_type=%s error=%s", event_type, exc)

    def info(self, event_type: str, message: str, **fields: Any) -> None:
        self.log("INFO", event_type, message, **fields)

    def error(self, event_type: str, message: str, **fields: Any) -> None:
        self.log("ERROR", event_type, message, **fields)

    def recent(self, limit: int = 50) -> list[EventLogEntry]:
        statement = select(EventLog).order_by(EventLog.logged_at.desc(), EventLog.id.desc()).limit(limit)
        return self._entries(statement)

    def for_owner(self, owner_id: str, limit: int = 20) -> list[EventLogEntry]:
        statement = (
            select(EventLog)
            .where(EventLog.owner_id == owner_id)
            .order_by(EventLog.logged_at.desc(), EventLog.id.desc())
            .limit(limit)
        )
        return self._entries(statement)

    def summary(self, hours: int = 24) -> LogSummary:
        since = _naive_utcnow() - timedelta(hours=hours)
        count = func.count(EventLog.id)
        statement = (
            select(EventLog.level, EventLog.event_type, count)
            .where(EventLog.logged_at >= since)
            .group_by(EventLog.level, EventLog.event_type)
            .order_by(count.desc(), EventLog.event_type)
        )
        try:
            with self.session_factory() as session:
                rows = session.execute(statement).all()
        except SQLAlchemyError as exc:
            logger.error("Event log summary failed error=%s", exc)
            raise StorageError("failed to summarise event log") from exc

        result = LogSummary(hours=hours)
        for level, event_type, total in rows:
            result.total += total
            if level == "ERROR":
                result.errors += total
            elif level == "WARN":
                result.warnings += total
            elif level == "INFO":
                result.info += total
        result.top_events = [
            EventCount(level=level, event_type=event_type, count=total)
            for level, event_type, total in rows[:TOP_EVENTS]
        ]
        return result

    def cleanup(self, days: int = 7) -> int:
        cutoff = _naive_utcnow() - timedelta(days=days)
        try:
            with self.session_factory() as session:
                result = session.execute(delete(EventLog).where(EventLog.logged_at < cutoff))
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("Event log cleanup failed error=%s", exc)
            raise StorageError("failed to clean up event log") from exc
        removed = result.rowcount or 0
        if removed:
            logger.info("Removed old event log entries count=%s days=%s", removed, days)
        return removed

    def _entries(self, statement) -> list[EventLogEntry]:
        try:
            with self.session_factory() as session:
                return [EventLogEntry.model_validate(row) for row in session.scalars(statement).all()]
        except SQLAlchemyError as exc:
            logger.error("Event log read failed error=%s", exc)
            raise StorageError("failed to read event log") from exc
