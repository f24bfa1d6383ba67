from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta

from pydantic import ValidationError as PydanticValidationError

from resumematch.core.retry import retry_with_backoff
from resumematch.db.kv import KeyValueStore
from resumematch.errors import StorageError
from resumematch.types import (
    ACTIVE_STATUSES,
    Document,
    HealthStatus,
    MatchRequest,
    RequestStatus,
    StorageStatistics,
    utcnow,
)

logger = logging.getLogger(__name__)

REQUEST_PREFIX = "request:"
DOCUMENT_PREFIX = "document:"

# forward-only; completed and error are terminal
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "collecting": frozenset({"collecting", "processing"}),
    "processing": frozenset({"processing", "completed", "error"}),
    "completed": frozenset(),
    "error": frozenset(),
}


def request_key(request_id: str) -> str:
    return f"{REQUEST_PREFIX}{request_id}"


def document_key(document_id: str) -> str:
    return f"{DOCUMENT_PREFIX}{document_id}"


def active_index_key(owner_id: str) -> str:
    return f"user:{owner_id}:active"


class RequestStorage:
    """Requests, documents and the per-owner active-request index over a key-value store.

    Nothing here is transactional across keys. The index is derived from request
    status on every ``store_request`` and may briefly disagree with it.
    """

    def __init__(self, kv: KeyValueStore, *, retry_attempts: int = 4, retry_base_delay: float = 0.05):
        self.kv = kv
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay

    def store_request(self, request: MatchRequest) -> None:
        self.kv.put(request_key(request.id), request.model_dump_json())

        index_key = active_index_key(request.owner_id)
        if request.status in ACTIVE_STATUSES:
            self.kv.put(index_key, request.id)
        elif self.kv.get(index_key) == request.id:
            self.kv.delete(index_key)

    def get_request(self, request_id: str) -> MatchRequest | None:
        stored = self.kv.get(request_key(request_id))
        if not stored:
            return None
        try:
            return MatchRequest.model_validate_json(stored)
        except PydanticValidationError as exc:
            logger.error("Stored request is unreadable request_id=%s error=%s", request_id, exc)
            return None

    def get_request_visible(self, request_id: str) -> MatchRequest | None:
        """Read a request that was just written, waiting for it to become visible."""
        return retry_with_backoff(
            lambda: self.get_request(request_id),
            attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            label=f"request {request_id}",
        )

    def update_request_status(
        self,
        request_id: str,
        status: RequestStatus,
        *,
        error: str | None = None,
    ) -> MatchRequest:
        request = self.get_request_visible(request_id)
        if request is None:
            raise StorageError(f"request {request_id} not found")

        if status not in STATUS_TRANSITIONS[request.status]:
            raise StorageError(f"request {request_id} cannot move from {request.status} to {status}")

        now = utcnow()
        request.status = status
        request.last_activity = now
        if status == "completed":
            request.processed_at = now
        if error is not None:
            request.error = error
        self.store_request(request)
        return request

    def get_user_active_request(self, owner_id: str) -> MatchRequest | None:
        index_key = active_index_key(owner_id)
        request_id = self.kv.get(index_key)
        if not request_id:
            return None

        request = self.get_request(request_id)
        if request is None:
            return None
        if not request.is_active:
            logger.info("Dropping stale active index owner_id=%s request_id=%s", owner_id, request_id)
            self.kv.delete(index_key)
            return None
        return request

    def delete_request(self, request_id: str) -> None:
        request = self.get_request(request_id)
        if request is None:
            return

        for document_id in request.document_ids:
            self.kv.delete(document_key(document_id))
        self.kv.delete(request_key(request_id))

        index_key = active_index_key(request.owner_id)
        if self.kv.get(index_key) == request_id:
            self.kv.delete(index_key)

    def get_expired_requests(self, older_than_hours: float, *, now: datetime | None = None) -> list[str]:
        cutoff = (now or utcnow()) - timedelta(hours=older_than_hours)
        expired: list[str] = []
        for key in self.kv.list_keys(REQUEST_PREFIX):
            request = self.get_request(key[len(REQUEST_PREFIX):])
            if request is not None and request.last_activity < cutoff:
                expired.append(request.id)
        return expired

    def cleanup_expired_requests(self, older_than_hours: float, *, now: datetime | None = None) -> int:
        expired = self.get_expired_requests(older_than_hours, now=now)
        for request_id in expired:
            self.delete_request(request_id)
        purged = self.kv.purge_expired()
        if purged:
            logger.info("Purged expired keys count=%s", purged)
        return len(expired)

    def store_document(self, document: Document) -> None:
        self.kv.put(document_key(document.id), document.model_dump_json())
        self._add_document_to_request(document.request_id, document.id)

    def get_document(self, document_id: str) -> Document | None:
        stored = self.kv.get(document_key(document_id))
        if not stored:
            return None
        try:
            return Document.model_validate_json(stored)
        except PydanticValidationError as exc:
            logger.error("Stored document is unreadable document_id=%s error=%s", document_id, exc)
            return None

    def get_request_documents(self, request_id: str) -> list[Document]:
        request = self.get_request(request_id)
        if request is None:
            return []

        documents: list[Document] = []
        for document_id in request.document_ids:
            document = self.get_document(document_id)
            if document is not None:
                documents.append(document)
        return documents

    def delete_document(self, document_id: str) -> None:
        document = self.get_document(document_id)
        if document is None:
            return
        self._remove_document_from_request(document.request_id, document_id)
        self.kv.delete(document_key(document_id))

    def health_check(self) -> HealthStatus:
        probe_key = f"health-check-{utcnow().timestamp()}"
        try:
            self.kv.put(probe_key, json.dumps({"timestamp": utcnow().isoformat()}), ttl_seconds=60)
            if self.kv.get(probe_key) is None:
                raise StorageError("probe key was not readable after write")
            self.kv.delete(probe_key)
        except StorageError as exc:
            return HealthStatus(status="unhealthy", message=f"Storage health check failed: {exc}")
        return HealthStatus(
            status="healthy",
            message="Request storage operational",
            details={"kv_operations_test": "passed"},
        )

    def get_statistics(self) -> StorageStatistics:
        request_keys = self.kv.list_keys(REQUEST_PREFIX)
        stats = StorageStatistics(
            total_requests=len(request_keys),
            total_documents=len(self.kv.list_keys(DOCUMENT_PREFIX)),
        )
        for key in request_keys:
            request = self.get_request(key[len(REQUEST_PREFIX):])
            if request is None:
                continue
            if request.is_active:
                stats.active_requests += 1
            elif request.status == "completed":
                stats.completed_requests += 1
        return stats

    def _add_document_to_request(self, request_id: str, document_id: str) -> None:
        request = self.get_request_visible(request_id)
        if request is None:
            raise StorageError(f"request {request_id} not found")

        if document_id not in request.document_ids:
            request.document_ids.append(document_id)
            request.last_activity = utcnow()
            self.store_request(request)

    def _remove_document_from_request(self, request_id: str, document_id: str) -> None:
        request = self.get_request(request_id)
        if request is None:
            return
        if document_id in request.document_ids:
            request.document_ids.remove(document_id)
            request.last_activity = utcnow()
            self.store_request(request)
