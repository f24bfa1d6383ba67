from concurrent.futures import ThreadPoolExecutor

import pytest

from resumematch.core.converters import UnavailableConverter
from resumematch.core.runtime import build_services
from resumematch.db.kv import SqlKeyValueStore
from resumematch.db.repositories import active_index_key
from resumematch.db.session import SessionLocal
from resumematch.errors import NotFoundError, StorageError, ValidationError

RESUME = "5 years product management, roadmaps, stakeholder alignment".encode("utf-8")
JOB_POST = "Seeking PM with 3+ years of experience and SQL".encode("utf-8")


def test_create_request_is_idempotent_per_owner(services) -> None:
    first = services.manager.create_request("owner-1", "chat-1")
    second = services.manager.create_request("owner-1", "chat-2")
    other = services.manager.create_request("owner-2", "chat-3")

    assert first.status == "collecting"
    assert first.document_ids == []
    assert second.id == first.id
    assert other.id != first.id


def test_add_document_to_missing_request_fails(services) -> None:
    with pytest.raises(NotFoundError):
        services.manager.add_document("request-missing", "resume", RESUME)


def test_duplicate_type_is_rejected_and_leaves_request_unchanged(services) -> None:
    request = services.manager.create_request("owner-1", "chat-1")
    services.manager.add_document(request.id, "resume", RESUME)

    with pytest.raises(ValidationError, match="resume already provided"):
        services.manager.add_document(request.id, "resume", "another resume".encode("utf-8"))

    stored = services.storage.get_request(request.id)
    assert len(stored.document_ids) == 1
    assert stored.status == "collecting"


def test_unknown_document_type_is_rejected(services) -> None:
    request = services.manager.create_request("owner-1", "chat-1")
    with pytest.raises(ValidationError):
        services.manager.add_document(request.id, "cover_letter", RESUME)


def test_second_document_completes_analysis(services, fake_completion) -> None:
    request = services.manager.create_request("owner-1", "chat-1")
    resume = services.manager.add_document(request.id, "resume", RESUME)
    assert services.storage.get_request(request.id).status == "collecting"
    assert services.manager.get_analysis_result(request.id) is None

    services.manager.add_document(request.id, "job_post", JOB_POST)

    stored = services.storage.get_request(request.id)
    assert stored.status == "completed"
    assert stored.processed_at is not None
    assert sorted(fake_completion.calls) == ["conditions", "experience", "headlines", "skills"]

    result = services.manager.get_analysis_result(request.id)
    assert result is not None
    assert result.analysis.overall_score == 75
    assert result.resume.id == resume.id
    assert result.job_post.type == "job_post"
    assert services.manager.get_active_request("owner-1") is None


def test_completed_request_rejects_more_documents_and_new_request_starts(services) -> None:
    request = services.manager.create_request("owner-1", "chat-1")
    services.manager.add_document(request.id, "resume", RESUME)
    services.manager.add_document(request.id, "job_post", JOB_POST)

    with pytest.raises(ValidationError, match="not accepting documents"):
        services.manager.add_document(request.id, "resume", RESUME)

    fresh = services.manager.create_request("owner-1", "chat-1")
    assert fresh.id != request.id
    assert fresh.status == "collecting"


def test_unparsable_category_marks_request_as_error(make_services) -> None:
    services = make_services({"skills": "I'm sorry, I can't produce JSON today."})
    request = services.manager.create_request("owner-1", "chat-1")
    services.manager.add_document(request.id, "resume", RESUME)
    services.manager.add_document(request.id, "job_post", JOB_POST)

    stored = services.storage.get_request(request.id)
    assert stored.status == "error"
    assert stored.analysis is None
    assert stored.error
    assert services.manager.get_analysis_result(request.id) is None
    assert services.storage.kv.get(active_index_key("owner-1")) is None


class FlakyIndexStore(SqlKeyValueStore):
    """Fails the first delete of an active-index key, then behaves normally."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.failed = False

    def delete(self, key):
        if key.startswith("user:") and not self.failed:
            self.failed = True
            raise StorageError(f"failed to delete {key}")
        super().delete(key)


def test_index_failure_after_completed_write_keeps_result(fake_completion) -> None:
    kv = FlakyIndexStore(SessionLocal)
    services = build_services(kv=kv, completion=fake_completion, converter=UnavailableConverter())
    request = services.manager.create_request("owner-1", "chat-1")
    services.manager.add_document(request.id, "resume", RESUME)
    services.manager.add_document(request.id, "job_post", JOB_POST)

    assert kv.failed is True
    stored = services.storage.get_request(request.id)
    assert stored.status == "completed"
    assert stored.error is None
    assert stored.analysis.overall_score == 75
    assert services.manager.get_analysis_result(request.id) is not None
    assert services.manager.get_active_request("owner-1") is None
    assert kv.get(active_index_key("owner-1")) is None

def test_check_completion_only_fires_once(services, fake_completion) -> None:
    request = services.manager.create_request("owner-1", "chat-1")
    assert services.manager.check_completion(request.id) is False

    services.manager.add_document(request.id, "resume", RESUME)
    services.manager.add_document(request.id, "job_post", JOB_POST)

    assert services.manager.check_completion(request.id) is False
    assert len(fake_completion.calls) == 4


def test_cancel_request_removes_request_documents_and_index(services) -> None:
    request = services.manager.create_request("owner-1", "chat-1")
    document = services.manager.add_document(request.id, "resume", RESUME)

    assert services.manager.cancel_request(request.id) is True

    assert services.manager.get_request_details(request.id) is None
    assert services.storage.get_document(document.id) is None
    assert services.manager.get_active_request("owner-1") is None
    assert services.manager.cancel_request(request.id) is False


def test_request_details_list_documents(services) -> None:
    request = services.manager.create_request("owner-1", "chat-1", language="en")
    services.manager.add_document(request.id, "resume", RESUME, filename="cv.txt", mime_type="text/plain")

    details = services.manager.get_request_details(request.id)

    assert details.request.language == "en"
    assert len(details.documents) == 1
    document = details.documents[0]
    assert document.original_name == "cv.txt"
    assert document.size == len(RESUME)
    assert document.conversion_method == "plain-text"


def test_document_reads_go_through_pipeline(services, monkeypatch) -> None:
    request = services.manager.create_request("owner-1", "chat-1")
    services.manager.add_document(request.id, "resume", RESUME)

    reads: list[str] = []
    original = services.pipeline.get_request_documents

    def counting(request_id: str):
        reads.append(request_id)
        return original(request_id)

    monkeypatch.setattr(services.pipeline, "get_request_documents", counting)
    services.manager.add_document(request.id, "job_post", JOB_POST)
    services.manager.get_request_details(request.id)
    services.manager.get_analysis_result(request.id)

    assert len(reads) >= 5
    assert set(reads) == {request.id}


def test_concurrent_double_submit_keeps_one_document_per_type(services) -> None:
    request = services.manager.create_request("owner-1", "chat-1")

    def submit(_: int):
        try:
            return services.manager.add_document(request.id, "resume", RESUME)
        except ValidationError:
            return None

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(submit, range(4)))

    assert sum(result is not None for result in results) == 1
    assert len(services.storage.get_request(request.id).document_ids) == 1


def test_background_analysis_uses_executor(make_services) -> None:
    services = make_services()
    with ThreadPoolExecutor(max_workers=1) as executor:
        services.manager.executor = executor
        request = services.manager.create_request("owner-1", "chat-1")
        services.manager.add_document(request.id, "resume", RESUME)
        services.manager.add_document(request.id, "job_post", JOB_POST)

    assert services.storage.get_request(request.id).status == "completed"


def test_cleanup_statistics_and_health(services) -> None:
    services.manager.create_request("owner-1", "chat-1")

    assert services.manager.cleanup_old_requests(24) == 0
    assert services.manager.get_statistics() == {"recent_requests": 1, "completed_requests": 0}
    health = services.manager.health_check()
    assert health.status == "healthy"
    assert health.details["pipeline"]["details"]["conversion"] == "unavailable"
