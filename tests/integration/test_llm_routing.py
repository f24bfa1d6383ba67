import pytest

from resumematch.config import Settings
from resumematch.core.analysis import AnalysisOrchestrator
from resumematch.llm.router import LLMRouter, ProviderNotConfigured


def test_router_unavailable_without_credentials() -> None:
    router = LLMRouter(settings=Settings(openai_api_key="", local_llm_enabled=False))

    assert router.available is False
    with pytest.raises(ProviderNotConfigured):
        router.complete("prompt", category="skills")


def test_local_provider_requires_enable_flag() -> None:
    router = LLMRouter(settings=Settings(llm_provider="local", local_llm_enabled=False))
    assert router.available is False

    enabled = LLMRouter(settings=Settings(llm_provider="local", local_llm_enabled=True))
    assert enabled.available is True
    assert enabled._provider().config.name == "local"


def test_router_passes_system_prompt_and_returns_text(monkeypatch) -> None:
    router = LLMRouter(settings=Settings(openai_api_key="sk-test"))
    provider = router.pool.openai()
    seen = {}

    def fake_complete_text(*, prompt, system="", model=None):
        seen.update(prompt=prompt, system=system)
        return type("Reply", (), {"content": '{"matchScore": 50}'})()

    monkeypatch.setattr(provider, "complete_text", fake_complete_text)

    assert router.complete("analyze this", category="headlines") == '{"matchScore": 50}'
    assert seen["prompt"] == "analyze this"
    assert "JSON" in seen["system"]


def test_unconfigured_router_makes_analysis_return_none() -> None:
    router = LLMRouter(settings=Settings(openai_api_key="", local_llm_enabled=False))
    orchestrator = AnalysisOrchestrator(router)

    assert orchestrator.analyze("resume", "job") is None
