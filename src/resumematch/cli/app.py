from __future__ import annotations

import json
import mimetypes
from pathlib import Path

import typer
import uvicorn

from resumematch.api.app import create_app
from resumematch.config import get_settings
from resumematch.core.fetcher import fetch_file
from resumematch.core.runtime import Services, build_services
from resumematch.db.init import init_database
from resumematch.errors import AuthError, ResumeMatchError
from resumematch.logging_config import configure_logging

app = typer.Typer(help="ResumeMatch CLI")
request_app = typer.Typer(help="Create and inspect matching requests")
admin_app = typer.Typer(help="Admin session commands")

app.add_typer(request_app, name="request")
app.add_typer(admin_app, name="admin")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


def _services() -> Services:
    configure_logging()
    ensure_initialized()
    return build_services()


def _echo(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


@app.command("init")
def init_cmd() -> None:
    """Initialize database and data directories."""
    configure_logging()
    result = init_database()
    typer.echo(json.dumps({"ok": True, **result}, indent=2))


@request_app.command("create")
def request_create(
    owner_id: str = typer.Option(..., "--owner"),
    context_id: str = typer.Option("", "--context"),
    language: str | None = typer.Option(None, "--language"),
) -> None:
    services = _services()
    request = services.manager.create_request(owner_id, context_id, language)
    _echo(request.model_dump(mode="json", exclude={"analysis"}))


@request_app.command("add")
def request_add(
    request_id: str = typer.Argument(...),
    document_type: str = typer.Option(..., "--type"),
    file: Path | None = typer.Option(None, "--file", exists=True, readable=True),
    url: str | None = typer.Option(None, "--url"),
    text: str | None = typer.Option(None, "--text"),
) -> None:
    if document_type not in {"resume", "job_post"}:
        raise typer.BadParameter("type must be 'resume' or 'job_post'")

    services = _services()
    settings = get_settings()
    filename: str | None = None
    mime_type: str | None = None
    try:
        if file is not None:
            content = file.read_bytes()
            filename = file.name
            mime_type = mimetypes.guess_type(file.name)[0]
        elif url is not None:
            fetched = fetch_file(
                url,
                timeout_sec=settings.fetch_timeout_sec,
                max_bytes=settings.max_file_size_mb * 1024 * 1024,
            )
            content, filename, mime_type = fetched.content, fetched.filename, fetched.mime_type
        elif text is not None:
            content = text.encode("utf-8")
        else:
            raise typer.BadParameter("provide one of --file, --url or --text")

        document = services.manager.add_document(
            request_id,
            document_type,  # type: ignore[arg-type]
            content,
            filename=filename,
            mime_type=mime_type,
        )
    except ResumeMatchError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    request = services.storage.get_request(request_id)
    _echo(
        {
            "document_id": document.id,
            "type": document.type,
            "word_count": document.word_count,
            "conversion_method": document.conversion_method,
            "request_status": request.status if request else None,
        }
    )


@request_app.command("show")
def request_show(request_id: str = typer.Argument(...)) -> None:
    services = _services()
    details = services.manager.get_request_details(request_id)
    if details is None:
        raise typer.BadParameter(f"request {request_id} not found")

    payload: dict[str, object] = {
        "request": details.request.model_dump(mode="json", exclude={"analysis"}),
        "documents": [
            document.model_dump(mode="json", exclude={"text"}) for document in details.documents
        ],
    }
    if details.request.analysis is not None:
        payload["overall_score"] = details.request.analysis.overall_score
        payload["summary"] = details.request.analysis.summary
    _echo(payload)


@request_app.command("cancel")
def request_cancel(request_id: str = typer.Argument(...)) -> None:
    services = _services()
    _echo({"request_id": request_id, "cancelled": services.manager.cancel_request(request_id)})


@app.command("cleanup")
def cleanup(
    older_than_hours: float | None = typer.Option(None, "--older-than-hours"),
    log_days: int = typer.Option(7, "--log-days"),
    owner_id: str | None = typer.Option(None, "--owner"),
) -> None:
    """Delete requests with no activity for the given number of hours."""
    services = _services()
    _require_admin(services, owner_id)

    hours = older_than_hours if older_than_hours is not None else get_settings().request_expiry_hours
    _echo(
        {
            "cleaned": services.manager.cleanup_old_requests(hours),
            "removed_logs": services.events.cleanup(log_days),
            "stats": services.manager.get_statistics(),
        }
    )


@app.command("logs")
def logs(
    limit: int = typer.Option(50, "--limit"),
    for_owner: str | None = typer.Option(None, "--for-owner", help="Only events of this owner"),
    summary_hours: int | None = typer.Option(None, "--summary-hours", help="Summarise the last N hours instead"),
    owner_id: str | None = typer.Option(None, "--owner"),
) -> None:
    """Show recent lifecycle events."""
    services = _services()
    _require_admin(services, owner_id)

    if summary_hours is not None:
        _echo(services.events.summary(summary_hours).model_dump(mode="json"))
        return
    if for_owner:
        entries = services.events.for_owner(for_owner, limit=limit)
    else:
        entries = services.events.recent(limit=limit)
    _echo([entry.model_dump(mode="json") for entry in entries])


def _require_admin(services: Services, owner_id: str | None) -> None:
    try:
        services.admin_auth.require_admin(owner_id)
    except AuthError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


@admin_app.command("login")
def admin_login(
    owner_id: str = typer.Option(..., "--owner"),
    context_id: str = typer.Option("", "--context"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
) -> None:
    services = _services()
    result = services.admin_auth.authenticate(owner_id, context_id, password)
    _echo(result.model_dump())
    if not result.success:
        raise typer.Exit(code=1)


@admin_app.command("logout")
def admin_logout(owner_id: str = typer.Option(..., "--owner")) -> None:
    services = _services()
    _echo(services.admin_auth.logout(owner_id).model_dump())


@admin_app.command("status")
def admin_status(owner_id: str = typer.Option(..., "--owner")) -> None:
    services = _services()
    session = services.admin_auth.get_session_info(owner_id)
    _echo(
        {
            "auth_required": services.admin_auth.is_auth_required(),
            "authenticated": services.admin_auth.is_authenticated(owner_id),
            "session": session.model_dump(mode="json") if session else None,
        }
    )


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    uvicorn.run(create_app(), host=host or settings.app_host, port=port or settings.app_port)


if __name__ == "__main__":
    app()
