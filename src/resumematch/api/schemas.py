from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from resumematch.types import (
    AnalysisResult,
    ConversionMethod,
    Document,
    DocumentType,
    MatchRequest,
    RequestStatus,
)


class RequestCreateRequest(BaseModel):
    owner_id: str
    chat_context_id: str = ""
    language: str | None = None


class RequestResponse(BaseModel):
    id: str
    owner_id: str
    chat_context_id: str
    status: RequestStatus
    document_ids: list[str]
    language: str | None = None
    error: str | None = None
    created_at: datetime
    last_activity: datetime
    processed_at: datetime | None = None

    @classmethod
    def from_request(cls, request: MatchRequest) -> RequestResponse:
        return cls.model_validate(request.model_dump(exclude={"analysis"}))


class DocumentResponse(BaseModel):
    id: str
    request_id: str
    type: DocumentType
    original_name: str | None = None
    mime_type: str | None = None
    size: int | None = None
    word_count: int
    conversion_method: ConversionMethod
    text_preview: str = ""
    created_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> DocumentResponse:
        return cls.model_validate(
            {**document.model_dump(exclude={"text"}), "text_preview": document.text[:500]}
        )


class RequestDetailsResponse(BaseModel):
    request: RequestResponse
    documents: list[DocumentResponse] = Field(default_factory=list)


class AnalysisResponse(BaseModel):
    request_id: str
    overall_score: int
    summary: str
    analysis: AnalysisResult


class DocumentFromUrlRequest(BaseModel):
    document_type: DocumentType
    url: str


class CleanupRequest(BaseModel):
    older_than_hours: float = 24
    log_days: int = 7


class CleanupResponse(BaseModel):
    cleaned: int
    removed_logs: int = 0


class AdminLoginRequest(BaseModel):
    owner_id: str
    context_id: str = ""
    password: str


class AdminStatusResponse(BaseModel):
    owner_id: str
    auth_required: bool
    authenticated: bool
