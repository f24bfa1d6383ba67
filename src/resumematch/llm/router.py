from __future__ import annotations

import logging

from resumematch.config import Settings, get_settings
from resumematch.llm.prompts import SYSTEM_PROMPT
from resumematch.llm.providers import LLMProvider, ProviderPool

logger = logging.getLogger(__name__)


class ProviderNotConfigured(RuntimeError):
    pass


class LLMRouter:
    """Text-completion capability handed to the analysis orchestrator.

    One provider is chosen from settings; failures surface to the caller.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.pool = ProviderPool(self.settings)

    @property
    def available(self) -> bool:
        try:
            self._provider()
        except ProviderNotConfigured:
            return False
        return True

    def complete(self, prompt: str, *, category: str) -> str:
        provider = self._provider()
        logger.info("LLM call category=%s provider=%s", category, provider.config.name)
        return provider.complete_text(prompt=prompt, system=SYSTEM_PROMPT).content

    def _provider(self) -> LLMProvider:
        if self.settings.llm_provider == "local":
            if not self.settings.local_llm_enabled:
                raise ProviderNotConfigured("local LLM provider selected but LOCAL_LLM_ENABLED is false")
            return self.pool.local()
        if not self.settings.openai_api_key:
            raise ProviderNotConfigured("OPENAI_API_KEY is not set")
        return self.pool.openai()
