from __future__ import annotations

import threading
from typing import Callable

from app.ai.config import PipelineConfig
from app.ai.providers import claude_provider, groq_provider, openai_provider
from app.ai.types import ProviderAdapter, ProviderChoice

AdapterBuilder = Callable[[str, PipelineConfig], ProviderAdapter]

_BUILDERS: dict[str, AdapterBuilder] = {
    "openai": openai_provider.from_config,
    "groq": groq_provider.from_config,
    "anthropic": claude_provider.from_config,
}


def select_provider(is_premium: bool, config: PipelineConfig) -> ProviderChoice:
    """Tier lookup only. Request content never influences the choice."""
    if not is_premium:
        return config.free_choice
    return config.premium_choice


class ProviderRegistry:
    """Builds one adapter per (provider, model) and reuses its SDK client."""

    def __init__(self, config: PipelineConfig, builders: dict[str, AdapterBuilder] | None = None):
        self._config = config
        self._builders = dict(builders or _BUILDERS)
        self._adapters: dict[tuple[str, str], ProviderAdapter] = {}
        self._lock = threading.Lock()

    @property
    def config(self) -> PipelineConfig:
        return self._config

    def adapter_for(self, choice: ProviderChoice) -> ProviderAdapter:
        key = (choice.provider, choice.model)
        with self._lock:
            adapter = self._adapters.get(key)
            if adapter is not None:
                return adapter

            builder = self._builders.get(choice.provider)
            if builder is None:
                raise ValueError(f"Unsupported AI_PROVIDER='{choice.provider}'")
            adapter = builder(choice.model, self._config)
            self._adapters[key] = adapter
            return adapter
