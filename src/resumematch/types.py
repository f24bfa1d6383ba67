from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

DocumentType = Literal["resume", "job_post"]
RequestStatus = Literal["collecting", "processing", "completed", "error"]
ConversionMethod = Literal["plain-text", "inference-conversion", "legacy-fallback", "raw-fallback"]
AnalysisCategory = Literal["headlines", "skills", "experience", "conditions"]
LogLevel = Literal["DEBUG", "INFO", "WARN", "ERROR"]

ACTIVE_STATUSES: frozenset[str] = frozenset({"collecting", "processing"})


def utcnow() -> datetime:
    return datetime.now(UTC)


def _clamp_score(value: Any) -> int:
    if isinstance(value, str):
        value = value.strip().rstrip("%")
    try:
        number = float(value)
    except TypeError as exc:
        raise ValueError(f"score must be numeric, got {type(value).__name__}") from exc
    return max(0, min(100, int(round(number))))


Score = Annotated[int, BeforeValidator(_clamp_score)]


class MatchRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    owner_id: str
    chat_context_id: str
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
    status: RequestStatus = "collecting"
    document_ids: list[str] = Field(default_factory=list)
    analysis: AnalysisResult | None = None
    processed_at: datetime | None = None
    language: str | None = None
    error: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class Document(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str
    request_id: str
    type: DocumentType
    original_name: str | None = None
    mime_type: str | None = None
    size: int | None = None
    text: str
    word_count: int
    conversion_method: ConversionMethod
    created_at: datetime = Field(default_factory=utcnow)


class SubAnalysis(BaseModel):
    """Shared shape of the four category results.

    Model output arrives in camelCase; stored payloads use field names. Both validate.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    explanation: str = ""
    problems: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class HeadlineAnalysis(SubAnalysis):
    job_title: str = ""
    candidate_titles: list[str] = Field(default_factory=list)
    match_score: Score


class SkillsAnalysis(SubAnalysis):
    requested_skills: list[str] = Field(default_factory=list)
    candidate_skills: list[str] = Field(default_factory=list)
    matching_skills: list[str] = Field(default_factory=list)
    missing_skills: list[str] = Field(default_factory=list)
    additional_skills: list[str] = Field(default_factory=list)
    match_score: Score


class ExperienceAnalysis(SubAnalysis):
    candidate_experience: list[str] = Field(default_factory=list)
    job_requirements: list[str] = Field(default_factory=list)
    experience_match: Score
    seniority_match: str = ""
    seniority_explanation: str = ""
    quantity_match: Score = 0
    quantity_explanation: str = ""


class ConditionCheck(BaseModel):
    job_value: str = Field(
        default="",
        validation_alias=AliasChoices("job_value", "jobLocation", "jobSalary", "jobSchedule", "jobFormat"),
    )
    candidate_value: str = Field(
        default="",
        validation_alias=AliasChoices(
            "candidate_value", "candidateLocation", "candidateExpectation", "candidatePreference"
        ),
    )
    compatible: bool = False
    explanation: str = ""


class ConditionsAnalysis(SubAnalysis):
    location: ConditionCheck = Field(default_factory=ConditionCheck)
    salary: ConditionCheck = Field(default_factory=ConditionCheck)
    schedule: ConditionCheck = Field(default_factory=ConditionCheck)
    work_format: ConditionCheck = Field(default_factory=ConditionCheck)
    overall_score: Score


class AnalysisResult(BaseModel):
    overall_score: int
    headlines: HeadlineAnalysis
    skills: SkillsAnalysis
    experience: ExperienceAnalysis
    conditions: ConditionsAnalysis
    summary: str
    processed_at: datetime = Field(default_factory=utcnow)


class RequestDetails(BaseModel):
    request: MatchRequest
    documents: list[Document] = Field(default_factory=list)


class RequestAnalysis(BaseModel):
    request: MatchRequest
    resume: Document
    job_post: Document
    analysis: AnalysisResult


class ConversionPayload(BaseModel):
    """One item returned by a document-to-markdown service.

    Services disagree on the field carrying the content; either may be set.
    """

    name: str = ""
    markdown: str | None = None
    data: str | None = None


class ModelResponse(BaseModel):
    content: str
    raw: dict[str, Any] = Field(default_factory=dict)


class AdminSession(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    owner_id: str
    context_id: str = ""
    environment: str
    authenticated_at: datetime
    expires_at: datetime


class LoginAttempt(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    owner_id: str
    attempts: int = 0
    last_attempt_at: datetime = Field(default_factory=utcnow)
    cooldown_until: datetime | None = None


class AuthResult(BaseModel):
    success: bool
    message: str
    cooldown_minutes: int | None = None
    remaining_attempts: int | None = None


class StorageStatistics(BaseModel):
    total_requests: int = 0
    total_documents: int = 0
    active_requests: int = 0
    completed_requests: int = 0


class HealthStatus(BaseModel):
    status: Literal["healthy", "unhealthy"]
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class EventLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    logged_at: datetime
    level: LogLevel
    event_type: str
    owner_id: str | None = None
    context_id: str | None = None
    message: str
    data: dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("data", "data_json"))
    error_details: str | None = None


class EventCount(BaseModel):
    level: LogLevel
    event_type: str
    count: int


class LogSummary(BaseModel):
    hours: int
    total: int = 0
    errors: int = 0
    warnings: int = 0
    info: int = 0
    top_events: list[EventCount] = Field(default_factory=list)


MatchRequest.model_rebuild()
