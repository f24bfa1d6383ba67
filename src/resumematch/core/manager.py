from __future__ import annotations

import logging
import threading
import uuid
import weakref
from concurrent.futures import Executor
from typing import Any

from resumematch.core.analysis import AnalysisOrchestrator
from resumematch.core.event_log import (
    ANALYSIS_COMPLETED,
    ANALYSIS_FAILED,
    ANALYSIS_STARTED,
    DOCUMENT_ADDED,
    REQUEST_CANCELLED,
    REQUEST_CREATED,
    EventLogService,
)
from resumematch.core.pipeline import DocumentPipeline
from resumematch.core.retry import retry_with_backoff
from resumematch.db.repositories import RequestStorage
from resumematch.errors import AnalysisError, NotFoundError, StorageError, ValidationError
from resumematch.types import (
    Document,
    DocumentType,
    HealthStatus,
    LogLevel,
    MatchRequest,
    RequestAnalysis,
    RequestDetails,
    utcnow,
)

logger = logging.getLogger(__name__)

REQUIRED_TYPES: frozenset[str] = frozenset({"resume", "job_post"})

_registry_guard = threading.Lock()
_request_locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()


def _lock_for(request_id: str) -> threading.Lock:
    # serialises check-then-write on one request inside this process only
    with _registry_guard:
        lock = _request_locks.get(request_id)
        if lock is None:
            lock = threading.Lock()
            _request_locks[request_id] = lock
        return lock


def generate_request_id() -> str:
    return f"request-{uuid.uuid4().hex}"


def _has_both_types(documents: list[Document]) -> bool:
    return REQUIRED_TYPES <= {document.type for document in documents}


class RequestManager:
    """Lifecycle of a matching request.

    collecting -> processing -> completed | error. Status never moves backwards;
    a failed or finished request is replaced by a new one, not reopened.
    """

    def __init__(
        self,
        pipeline: DocumentPipeline,
        storage: RequestStorage,
        analyzer: AnalysisOrchestrator,
        *,
        executor: Executor | None = None,
        events: EventLogService | None = None,
    ):
        self.pipeline = pipeline
        self.storage = storage
        self.analyzer = analyzer
        self.executor = executor
        self.events = events

    def create_request(self, owner_id: str, chat_context_id: str, language: str | None = None) -> MatchRequest:
        existing = self.storage.get_user_active_request(owner_id)
        if existing is not None:
            logger.info("Owner already has an active request owner_id=%s request_id=%s", owner_id, existing.id)
            return existing

        request = MatchRequest(
            id=generate_request_id(),
            owner_id=owner_id,
            chat_context_id=chat_context_id,
            language=language,
        )
        self.storage.store_request(request)
        logger.info("Request created request_id=%s owner_id=%s", request.id, owner_id)
        self._event(
            "INFO",
            REQUEST_CREATED,
            "Match request created",
            request,
            data={"language": language},
        )
        return request

    def add_document(
        self,
        request_id: str,
        document_type: DocumentType,
        content: bytes,
        filename: str | None = None,
        mime_type: str | None = None,
    ) -> Document:
        if document_type not in REQUIRED_TYPES:
            raise ValidationError(f"unknown document type '{document_type}'")

        with _lock_for(request_id):
            request = self.storage.get_request_visible(request_id)
            if request is None:
                raise NotFoundError(f"Request {request_id} not found")
            if request.status != "collecting":
                raise ValidationError(
                    f"Request {request_id} is not accepting documents (status: {request.status})"
                )

            existing = self.pipeline.get_request_documents(request_id)
            if any(document.type == document_type for document in existing):
                raise ValidationError(f"{document_type} already provided for this request")

            document = self.pipeline.process_document(
                request_id,
                document_type,
                content,
                filename=filename,
                mime_type=mime_type,
            )
            logger.info(
                "Document added request_id=%s document_id=%s type=%s words=%s method=%s",
                request_id,
                document.id,
                document_type,
                document.word_count,
                document.conversion_method,
            )
            self._event(
                "INFO",
                DOCUMENT_ADDED,
                f"{document_type} added",
                request,
                data={
                    "document_id": document.id,
                    "words": document.word_count,
                    "method": document.conversion_method,
                },
            )
            ready = self._mark_processing_if_ready(request_id, document.id)

        if ready:
            self._dispatch_analysis(request_id)
        return document

    def check_completion(self, request_id: str) -> bool:
        """Start analysis if both documents are present. Returns True when it was started."""
        with _lock_for(request_id):
            ready = self._mark_processing_if_ready(request_id, None)
        if ready:
            self._dispatch_analysis(request_id)
        return ready

    def cancel_request(self, request_id: str) -> bool:
        request = self.storage.get_request(request_id)
        if request is None:
            return False

        self.storage.delete_request(request_id)
        logger.info("Request cancelled request_id=%s owner_id=%s", request_id, request.owner_id)
        self._event("INFO", REQUEST_CANCELLED, "Match request cancelled", request)
        return True

    def get_active_request(self, owner_id: str) -> MatchRequest | None:
        return self.storage.get_user_active_request(owner_id)

    def get_request_details(self, request_id: str) -> RequestDetails | None:
        request = self.storage.get_request(request_id)
        if request is None:
            return None
        return RequestDetails(request=request, documents=self.pipeline.get_request_documents(request_id))

    def get_analysis_result(self, request_id: str) -> RequestAnalysis | None:
        request = self.storage.get_request(request_id)
        if request is None or request.status != "completed" or request.analysis is None:
            return None

        resume, job_post = self._split_documents(self.pipeline.get_request_documents(request_id))
        if resume is None or job_post is None:
            logger.error("Completed request is missing documents request_id=%s", request_id)
            return None
        return RequestAnalysis(request=request, resume=resume, job_post=job_post, analysis=request.analysis)

    def cleanup_old_requests(self, older_than_hours: float = 24) -> int:
        try:
            cleaned = self.storage.cleanup_expired_requests(older_than_hours)
        except StorageError:
            logger.exception("Cleanup of expired requests failed")
            return 0
        if cleaned:
            logger.info("Cleaned up expired requests count=%s older_than_hours=%s", cleaned, older_than_hours)
        return cleaned

    def get_statistics(self) -> dict[str, int]:
        stats = self.storage.get_statistics()
        return {"recent_requests": stats.active_requests, "completed_requests": stats.completed_requests}

    def health_check(self) -> HealthStatus:
        pipeline_health = self.pipeline.health_check()
        if pipeline_health.status != "healthy":
            return HealthStatus(
                status="unhealthy",
                message=f"Pipeline unhealthy: {pipeline_health.message}",
                details={"pipeline": pipeline_health.model_dump()},
            )
        storage_health = self.storage.health_check()
        if storage_health.status != "healthy":
            return HealthStatus(
                status="unhealthy",
                message=f"Storage unhealthy: {storage_health.message}",
                details={"storage": storage_health.model_dump()},
            )
        return HealthStatus(
            status="healthy",
            message="Request manager operational",
            details={"pipeline": pipeline_health.model_dump(), "storage": storage_health.model_dump()},
        )

    def _mark_processing_if_ready(self, request_id: str, expected_document_id: str | None) -> bool:
        def _visible(documents: list[Document]) -> bool:
            if expected_document_id is None:
                return True
            return any(document.id == expected_document_id for document in documents)

        documents = retry_with_backoff(
            lambda: self.pipeline.get_request_documents(request_id),
            attempts=self.storage.retry_attempts,
            base_delay=self.storage.retry_base_delay,
            accept=_visible,
            label=f"documents of {request_id}",
        )
        if not _has_both_types(documents):
            return False

        request = self.storage.get_request_visible(request_id)
        if request is None or request.status != "collecting":
            return False
        self.storage.update_request_status(request_id, "processing")
        logger.info("Request ready for analysis request_id=%s", request_id)
        return True

    def _dispatch_analysis(self, request_id: str) -> None:
        if self.executor is None:
            self._process_analysis(request_id)
            return
        self.executor.submit(self._process_analysis, request_id)

    def _process_analysis(self, request_id: str) -> None:
        started = utcnow()
        try:
            request = self.storage.get_request_visible(request_id)
            if request is None:
                raise StorageError(f"request {request_id} not found")

            documents = retry_with_backoff(
                lambda: self.pipeline.get_request_documents(request_id),
                attempts=self.storage.retry_attempts,
                base_delay=self.storage.retry_base_delay,
                accept=_has_both_types,
                label=f"documents of {request_id}",
            )
            resume, job_post = self._split_documents(documents)
            if resume is None or job_post is None:
                raise AnalysisError(f"Missing documents for analysis: request_id={request_id}")

            logger.info(
                "Analysis started request_id=%s resume_words=%s job_post_words=%s",
                request_id,
                resume.word_count,
                job_post.word_count,
            )
            self._event(
                "INFO",
                ANALYSIS_STARTED,
                "Analysis started",
                request,
                data={"resume_words": resume.word_count, "job_post_words": job_post.word_count},
            )
            analysis = self.analyzer.analyze(resume.text, job_post.text)
            if analysis is None:
                raise AnalysisError("Analysis returned no result")

            request = self.storage.get_request_visible(request_id)
            if request is None:
                raise StorageError(f"request {request_id} disappeared during analysis")

            now = utcnow()
            request.analysis = analysis
            request.status = "completed"
            request.processed_at = now
            request.last_activity = now
            self.storage.store_request(request)
            elapsed = (now - started).total_seconds()
            logger.info(
                "Analysis completed request_id=%s overall_score=%s elapsed=%.2fs",
                request_id,
                analysis.overall_score,
                elapsed,
            )
            self._event(
                "INFO",
                ANALYSIS_COMPLETED,
                f"Analysis completed with score {analysis.overall_score}",
                request,
                data={"overall_score": analysis.overall_score, "elapsed_seconds": round(elapsed, 2)},
            )
        except Exception as exc:
            logger.exception("Analysis failed request_id=%s", request_id)
            self._mark_failed(request_id, exc)

    def _mark_failed(self, request_id: str, exc: Exception) -> None:
        try:
            request = self.storage.get_request(request_id)
            if request is None or request.status != "processing":
                # a stored result stays completed even if index upkeep failed after it
                logger.warning(
                    "Not marking request as failed request_id=%s status=%s",
                    request_id,
                    request.status if request else None,
                )
                return
            request = self.storage.update_request_status(request_id, "error", error=str(exc))
        except StorageError as store_exc:
            logger.error("Could not mark request as failed request_id=%s error=%s", request_id, store_exc)
            return
        self._event("ERROR", ANALYSIS_FAILED, "Analysis failed", request, error=str(exc))

    def _event(
        self,
        level: LogLevel,
        event_type: str,
        message: str,
        request: MatchRequest,
        *,
        data: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        if self.events is None:
            return
        self.events.log(
            level,
            event_type,
            message,
            owner_id=request.owner_id,
            context_id=request.chat_context_id,
            data={"request_id": request.id, **(data or {})},
            error=error,
        )

    @staticmethod
    def _split_documents(documents: list[Document]) -> tuple[Document | None, Document | None]:
        resume = next((document for document in documents if document.type == "resume"), None)
        job_post = next((document for document in documents if document.type == "job_post"), None)
        return resume, job_post
