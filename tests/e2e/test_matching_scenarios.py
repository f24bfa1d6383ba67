import pytest

from resumematch.errors import ValidationError

RESUME = "5 years product management experience leading B2B SaaS roadmaps".encode("utf-8")
JOB_POST = "Seeking PM with 3+ years building SaaS products; SQL a plus".encode("utf-8")


def test_new_request_starts_collecting(services) -> None:
    request = services.manager.create_request("1", "chat-1")

    assert request.status == "collecting"
    assert request.document_ids == []
    assert services.manager.get_active_request("1").id == request.id


def test_plain_text_resume_keeps_request_collecting(services) -> None:
    request = services.manager.create_request("1", "chat-1")

    document = services.manager.add_document(request.id, "resume", RESUME)

    assert document.conversion_method == "plain-text"
    assert document.word_count == 9
    assert document.original_name is None and document.size is None
    assert services.storage.get_request(request.id).status == "collecting"


def test_job_post_triggers_analysis_to_completion(services) -> None:
    request = services.manager.create_request("1", "chat-1")
    services.manager.add_document(request.id, "resume", RESUME)
    services.manager.add_document(request.id, "job_post", JOB_POST)

    result = services.manager.get_analysis_result(request.id)

    assert services.storage.get_request(request.id).status == "completed"
    assert result is not None
    assert 0 <= result.analysis.overall_score <= 100
    assert result.analysis.conditions.location.job_value == "Remote"
    assert "KEY PROBLEMS:" in result.analysis.summary


def test_second_resume_is_rejected(services) -> None:
    request = services.manager.create_request("1", "chat-1")
    services.manager.add_document(request.id, "resume", RESUME)

    with pytest.raises(ValidationError, match="resume already provided"):
        services.manager.add_document(request.id, "resume", "Another resume".encode("utf-8"))

    assert len(services.storage.get_request(request.id).document_ids) == 1


@pytest.mark.parametrize("category", ["headlines", "skills", "experience", "conditions"])
def test_one_garbage_reply_fails_the_whole_request(make_services, category: str) -> None:
    services = make_services({category: "<html>502 Bad Gateway</html>"})
    request = services.manager.create_request("1", "chat-1")
    services.manager.add_document(request.id, "resume", RESUME)
    services.manager.add_document(request.id, "job_post", JOB_POST)

    assert services.manager.get_analysis_result(request.id) is None
    assert services.storage.get_request(request.id).status == "error"
    assert services.analyzer.analyze(RESUME.decode(), JOB_POST.decode()) is None


def test_failing_inference_call_fails_the_whole_request(services, monkeypatch) -> None:
    original = services.analyzer.completion.complete

    def boom(prompt: str, *, category: str) -> str:
        if category == "experience":
            raise TimeoutError("inference timed out")
        return original(prompt, category=category)

    monkeypatch.setattr(services.analyzer.completion, "complete", boom)
    request = services.manager.create_request("1", "chat-1")
    services.manager.add_document(request.id, "resume", RESUME)
    services.manager.add_document(request.id, "job_post", JOB_POST)

    stored = services.storage.get_request(request.id)
    assert stored.status == "error"
    assert stored.analysis is None


def test_failed_request_can_be_replaced(make_services) -> None:
    services = make_services({"skills": "nope"})
    request = services.manager.create_request("1", "chat-1")
    services.manager.add_document(request.id, "resume", RESUME)
    services.manager.add_document(request.id, "job_post", JOB_POST)

    replacement = services.manager.create_request("1", "chat-1")

    assert replacement.id != request.id
    assert replacement.status == "collecting"
