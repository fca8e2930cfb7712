from __future__ import annotations

from app.ai.config import GROQ_BASE_URL, PipelineConfig
from app.ai.providers.openai_provider import OpenAIProvider
from app.ai.types import ProviderName


class GroqProvider(OpenAIProvider):
    """Groq exposes an OpenAI-compatible chat completions endpoint."""

    provider: ProviderName = "groq"
    api_key_env = "GROQ_API_KEY"

    def _restricted(self) -> bool:
        # Groq-hosted models (including openai/gpt-oss-*) accept temperature and max_tokens.
        return False


def from_config(model: str, config: PipelineConfig) -> GroqProvider:
    credentials = config.credentials_for("groq")
    return GroqProvider(
        model=model,
        api_key=credentials.api_key,
        base_url=credentials.base_url or GROQ_BASE_URL,
        timeout_s=credentials.timeout_s,
        max_retries=credentials.max_retries,
        token_limit=config.token_limit_for(model),
    )
