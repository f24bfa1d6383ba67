from __future__ import annotations

import json
import os
import tempfile
import threading

_TEST_DATA_DIR = tempfile.mkdtemp(prefix="resumematch-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DATA_DIR}/test.db"
os.environ["DATA_DIR"] = _TEST_DATA_DIR
os.environ["APP_ENV"] = "test"
os.environ["OPENAI_API_KEY"] = ""
os.environ["CONVERSION_API_URL"] = ""
os.environ["READ_RETRY_BASE_DELAY_SEC"] = "0.001"
os.environ["ANALYSIS_IN_BACKGROUND"] = "false"

import pytest  # noqa: E402

from resumematch.core.converters import UnavailableConverter  # noqa: E402
from resumematch.core.runtime import Services, build_services  # noqa: E402
from resumematch.db import models  # noqa: E402,F401
from resumematch.db.base import Base  # noqa: E402
from resumematch.db.session import engine  # noqa: E402

CATEGORY_REPLIES: dict[str, dict] = {
    "headlines": {
        "jobTitle": "Product Manager",
        "candidateTitles": ["Senior Product Manager"],
        "matchScore": 80,
        "explanation": "Titles are closely aligned",
        "problems": ["Title lacks domain keyword"],
        "recommendations": ["Mirror the posting title in the headline"],
    },
    "skills": {
        "requestedSkills": ["Roadmapping", "SQL"],
        "candidateSkills": ["Roadmapping"],
        "matchingSkills": ["Roadmapping"],
        "missingSkills": ["SQL"],
        "additionalSkills": [],
        "matchScore": 60,
        "explanation": "SQL is missing",
        "problems": ["No SQL mentioned"],
        "recommendations": ["Add SQL projects"],
    },
    "experience": {
        "candidateExperience": ["5 years product management"],
        "jobRequirements": ["3+ years"],
        "experienceMatch": 70,
        "seniorityMatch": "match",
        "seniorityExplanation": "Mid to senior",
        "quantityMatch": 90,
        "quantityExplanation": "Exceeds requirement",
        "explanation": "Relevant experience",
        "problems": [],
        "recommendations": ["Quantify outcomes"],
    },
    "conditions": {
        "location": {"jobLocation": "Remote", "candidateLocation": "Remote", "compatible": True, "explanation": "ok"},
        "salary": {"jobSalary": "n/a", "candidateExpectation": "n/a", "compatible": True, "explanation": "ok"},
        "schedule": {"jobSchedule": "Full-time", "candidatePreference": "Full-time", "compatible": True},
        "workFormat": {"jobFormat": "Remote", "candidatePreference": "Remote", "compatible": True},
        "overallScore": 90,
        "explanation": "Conditions are compatible",
        "problems": [],
        "recommendations": [],
    },
}


class FakeCompletion:
    """Canned completion backend. ``overrides`` replaces the reply for a category."""

    def __init__(self, overrides: dict[str, str] | None = None):
        self.overrides = overrides or {}
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def complete(self, prompt: str, *, category: str) -> str:
        with self._lock:
            self.calls.append(category)
        if category in self.overrides:
            return self.overrides[category]
        return json.dumps(CATEGORY_REPLIES[category])


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def fake_completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture
def services(fake_completion: FakeCompletion) -> Services:
    return build_services(completion=fake_completion, converter=UnavailableConverter())


@pytest.fixture
def make_services():
    def _make(overrides: dict[str, str] | None = None, converter=None) -> Services:
        return build_services(
            completion=FakeCompletion(overrides),
            converter=converter or UnavailableConverter(),
        )

    return _make
