from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from resumematch.api.deps import get_services
from resumematch.api.schemas import (
    AdminLoginRequest,
    AdminStatusResponse,
    AnalysisResponse,
    CleanupRequest,
    CleanupResponse,
    DocumentFromUrlRequest,
    DocumentResponse,
    RequestCreateRequest,
    RequestDetailsResponse,
    RequestResponse,
)
from resumematch.config import get_settings
from resumematch.core.fetcher import fetch_file
from resumematch.core.runtime import Services
from resumematch.errors import AuthError, ConversionError, NotFoundError, StorageError, ValidationError
from resumematch.types import AuthResult, DocumentType, EventLogEntry, LogSummary

router = APIRouter(prefix="/api", tags=["api"])


@router.post("/requests", response_model=RequestResponse)
def create_request(payload: RequestCreateRequest, services: Services = Depends(get_services)) -> RequestResponse:
    try:
        request = services.manager.create_request(payload.owner_id, payload.chat_context_id, payload.language)
    except StorageError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return RequestResponse.from_request(request)


@router.get("/requests/active/{owner_id}", response_model=RequestResponse)
def get_active_request(owner_id: str, services: Services = Depends(get_services)) -> RequestResponse:
    request = services.manager.get_active_request(owner_id)
    if request is None:
        raise HTTPException(status_code=404, detail="No active request")
    return RequestResponse.from_request(request)


@router.get("/requests/{request_id}", response_model=RequestDetailsResponse)
def get_request(request_id: str, services: Services = Depends(get_services)) -> RequestDetailsResponse:
    details = services.manager.get_request_details(request_id)
    if details is None:
        raise HTTPException(status_code=404, detail="Request not found")
    return RequestDetailsResponse(
        request=RequestResponse.from_request(details.request),
        documents=[DocumentResponse.from_document(document) for document in details.documents],
    )


@router.post("/requests/{request_id}/documents", response_model=DocumentResponse)
def add_document(
    request_id: str,
    document_type: DocumentType = Form(...),
    text: str | None = Form(default=None),
    file: UploadFile | None = File(default=None),
    services: Services = Depends(get_services),
) -> DocumentResponse:
    if file is not None:
        content = file.file.read()
        filename, mime_type = file.filename, file.content_type
    elif text is not None:
        content, filename, mime_type = text.encode("utf-8"), None, None
    else:
        raise HTTPException(status_code=400, detail="Provide either a file or a text field")

    return _add_document(services, request_id, document_type, content, filename, mime_type)


@router.post("/requests/{request_id}/documents/from-url", response_model=DocumentResponse)
def add_document_from_url(
    request_id: str,
    payload: DocumentFromUrlRequest,
    services: Services = Depends(get_services),
) -> DocumentResponse:
    settings = get_settings()
    try:
        fetched = fetch_file(
            payload.url,
            timeout_sec=settings.fetch_timeout_sec,
            max_bytes=settings.max_file_size_mb * 1024 * 1024,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _add_document(
        services,
        request_id,
        payload.document_type,
        fetched.content,
        fetched.filename,
        fetched.mime_type,
    )


@router.get("/requests/{request_id}/analysis", response_model=AnalysisResponse)
def get_analysis(request_id: str, services: Services = Depends(get_services)) -> AnalysisResponse:
    result = services.manager.get_analysis_result(request_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Analysis not available")
    return AnalysisResponse(
        request_id=request_id,
        overall_score=result.analysis.overall_score,
        summary=result.analysis.summary,
        analysis=result.analysis,
    )


@router.delete("/requests/{request_id}")
def cancel_request(request_id: str, services: Services = Depends(get_services)) -> dict[str, str]:
    if not services.manager.cancel_request(request_id):
        raise HTTPException(status_code=404, detail="Request not found")
    return {"status": "cancelled", "request_id": request_id}


@router.post("/maintenance/cleanup", response_model=CleanupResponse)
def cleanup(
    payload: CleanupRequest,
    owner_id: str | None = None,
    services: Services = Depends(get_services),
) -> CleanupResponse:
    _require_admin(services, owner_id)
    cleaned = services.manager.cleanup_old_requests(payload.older_than_hours)
    try:
        removed_logs = services.events.cleanup(payload.log_days)
    except StorageError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return CleanupResponse(cleaned=cleaned, removed_logs=removed_logs)


@router.get("/maintenance/stats")
def statistics(owner_id: str | None = None, services: Services = Depends(get_services)) -> dict[str, int]:
    _require_admin(services, owner_id)
    return services.storage.get_statistics().model_dump()


@router.get("/maintenance/logs", response_model=list[EventLogEntry])
def event_logs(
    owner_id: str | None = None,
    owner: str | None = None,
    limit: int = 50,
    services: Services = Depends(get_services),
) -> list[EventLogEntry]:
    _require_admin(services, owner_id)
    try:
        if owner:
            return services.events.for_owner(owner, limit=limit)
        return services.events.recent(limit=limit)
    except StorageError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.get("/maintenance/logs/summary", response_model=LogSummary)
def event_log_summary(
    owner_id: str | None = None,
    hours: int = 24,
    services: Services = Depends(get_services),
) -> LogSummary:
    _require_admin(services, owner_id)
    try:
        return services.events.summary(hours)
    except StorageError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.post("/admin/login", response_model=AuthResult)
def admin_login(payload: AdminLoginRequest, services: Services = Depends(get_services)) -> AuthResult:
    result = services.admin_auth.authenticate(payload.owner_id, payload.context_id, payload.password)
    if result.success:
        return result
    status_code = 429 if result.cooldown_minutes else 401
    raise HTTPException(status_code=status_code, detail=result.model_dump())


@router.post("/admin/logout/{owner_id}", response_model=AuthResult)
def admin_logout(owner_id: str, services: Services = Depends(get_services)) -> AuthResult:
    return services.admin_auth.logout(owner_id)


@router.get("/admin/status/{owner_id}", response_model=AdminStatusResponse)
def admin_status(owner_id: str, services: Services = Depends(get_services)) -> AdminStatusResponse:
    return AdminStatusResponse(
        owner_id=owner_id,
        auth_required=services.admin_auth.is_auth_required(),
        authenticated=services.admin_auth.is_authenticated(owner_id),
    )


def _add_document(
    services: Services,
    request_id: str,
    document_type: DocumentType,
    content: bytes,
    filename: str | None,
    mime_type: str | None,
) -> DocumentResponse:
    try:
        document = services.manager.add_document(
            request_id,
            document_type,
            content,
            filename=filename,
            mime_type=mime_type,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ConversionError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return DocumentResponse.from_document(document)


def _require_admin(services: Services, owner_id: str | None) -> None:
    try:
        services.admin_auth.require_admin(owner_id)
    except AuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
