from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from sqlalchemy.orm import Session

from resumematch.config import Settings, get_settings
from resumematch.core.admin_auth import AdminAuth
from resumematch.core.analysis import AnalysisOrchestrator, CompletionBackend
from resumematch.core.converters import DocumentConverter, build_converter
from resumematch.core.event_log import EventLogService
from resumematch.core.manager import RequestManager
from resumematch.core.pipeline import DocumentPipeline
from resumematch.db.kv import KeyValueStore, SqlKeyValueStore
from resumematch.db.repositories import RequestStorage
from resumematch.llm.router import LLMRouter

_ANALYSIS_EXECUTOR: ThreadPoolExecutor | None = None


def get_analysis_executor() -> ThreadPoolExecutor:
    global _ANALYSIS_EXECUTOR
    if _ANALYSIS_EXECUTOR is None:
        _ANALYSIS_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="analysis")
    return _ANALYSIS_EXECUTOR


@dataclass(slots=True)
class Services:
    kv: KeyValueStore
    storage: RequestStorage
    pipeline: DocumentPipeline
    analyzer: AnalysisOrchestrator
    manager: RequestManager
    admin_auth: AdminAuth
    events: EventLogService


def build_services(
    settings: Settings | None = None,
    *,
    session_factory: Callable[[], Session] | None = None,
    kv: KeyValueStore | None = None,
    completion: CompletionBackend | None = None,
    converter: DocumentConverter | None = None,
) -> Services:
    """Wire the service graph leaf-first: kv, events -> storage -> pipeline/analyzer -> manager."""
    settings = settings or get_settings()
    if session_factory is None:
        from resumematch.db.session import SessionLocal

        session_factory = SessionLocal
    if kv is None:
        kv = SqlKeyValueStore(session_factory)
    events = EventLogService(session_factory)

    storage = RequestStorage(
        kv,
        retry_attempts=settings.read_retry_attempts,
        retry_base_delay=settings.read_retry_base_delay_sec,
    )
    pipeline = DocumentPipeline(
        storage,
        converter or build_converter(settings),
        max_file_size_mb=settings.max_file_size_mb,
    )
    analyzer = AnalysisOrchestrator(
        completion or LLMRouter(settings),
        max_input_chars=settings.analysis_max_input_chars,
    )
    manager = RequestManager(
        pipeline,
        storage,
        analyzer,
        executor=get_analysis_executor() if settings.analysis_in_background else None,
        events=events,
    )
    admin_auth = AdminAuth(
        kv,
        environment=settings.app_env,
        password=settings.admin_password,
        policy=settings.admin_policy(),
    )
    return Services(
        kv=kv,
        storage=storage,
        pipeline=pipeline,
        analyzer=analyzer,
        manager=manager,
        admin_auth=admin_auth,
        events=events,
    )
