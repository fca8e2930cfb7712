from __future__ import annotations

import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from app.ai.config import FALLBACK_TOKEN_LIMIT, PipelineConfig
from app.ai.types import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_SYSTEM_MESSAGE,
    DEFAULT_TEMPERATURE,
    AIResponse,
    CompletionOptions,
    ProviderName,
    TokenUsage,
)
from app.core.errors import UpstreamGenerationError

logger = logging.getLogger(__name__)

# These families reject temperature overrides and expect max_completion_tokens.
RESTRICTED_MODEL_PREFIXES = ("gpt-5", "o1-", "o3-")


def has_restricted_parameters(model: str) -> bool:
    return model.lower().startswith(RESTRICTED_MODEL_PREFIXES)


class OpenAIProvider:
    provider: ProviderName = "openai"
    api_key_env = "OPENAI_API_KEY"

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float = 30.0,
        max_retries: int = 2,
        token_limit: int = FALLBACK_TOKEN_LIMIT,
        client: Any | None = None,
    ):
        self.model = model
        self._token_limit = token_limit
        if client is not None:
            self._client = client
            return

        key = (api_key or "").strip()
        if not key:
            raise RuntimeError(f"{self.api_key_env} is missing")

        self._client = AsyncOpenAI(
            api_key=key,
            base_url=base_url or None,
            timeout=timeout_s,
            max_retries=max_retries,
        )

    def _restricted(self) -> bool:
        return has_restricted_parameters(self.model)

    def build_request(self, prompt: str, options: CompletionOptions) -> dict[str, Any]:
        requested = options.max_tokens or DEFAULT_MAX_TOKENS
        safe_max_tokens = min(requested, self._token_limit)

        request: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": options.system_message or DEFAULT_SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ],
        }
        if options.json_mode:
            request["response_format"] = {"type": "json_object"}

        if self._restricted():
            request["max_completion_tokens"] = safe_max_tokens
        else:
            request["temperature"] = DEFAULT_TEMPERATURE if options.temperature is None else options.temperature
            request["max_tokens"] = safe_max_tokens
        return request

    @staticmethod
    def _usage(raw_usage: Any) -> TokenUsage:
        if raw_usage is None:
            return TokenUsage()
        details = getattr(raw_usage, "prompt_tokens_details", None)
        cached = getattr(details, "cached_tokens", None) if details is not None else None
        return TokenUsage(
            prompt_tokens=int(getattr(raw_usage, "prompt_tokens", 0) or 0),
            completion_tokens=int(getattr(raw_usage, "completion_tokens", 0) or 0),
            total_tokens=int(getattr(raw_usage, "total_tokens", 0) or 0),
            cached_tokens=int(cached) if cached is not None else None,
        )

    async def complete(self, prompt: str, options: CompletionOptions) -> AIResponse:
        request = self.build_request(prompt, options)
        try:
            response = await self._client.chat.completions.create(**request)
        except OpenAIError as exc:
            logger.warning(
                "ai_upstream_failed provider=%s model=%s prompt_len=%s: %s",
                self.provider,
                self.model,
                len(prompt),
                exc,
            )
            raise UpstreamGenerationError(
                f"{self.provider} API error: {exc}", provider=self.provider, model=self.model
            ) from exc

        choice = response.choices[0] if response.choices else None
        content = (choice.message.content if choice is not None else None) or ""
        finish_reason = getattr(choice, "finish_reason", None)
        usage = self._usage(getattr(response, "usage", None))

        logger.info(
            "ai_response provider=%s model=%s finish_reason=%s response_len=%s total_tokens=%s",
            self.provider,
            self.model,
            finish_reason,
            len(content),
            usage.total_tokens,
        )
        if not content.strip():
            raise UpstreamGenerationError(
                f"{self.provider} API returned empty response. The model may have hit token limits.",
                provider=self.provider,
                model=self.model,
            )
        return AIResponse(
            content=content,
            usage=usage,
            provider=self.provider,
            model=self.model,
            finish_reason=finish_reason,
        )


def from_config(model: str, config: PipelineConfig) -> OpenAIProvider:
    credentials = config.credentials_for("openai")
    return OpenAIProvider(
        model=model,
        api_key=credentials.api_key,
        base_url=credentials.base_url,
        timeout_s=credentials.timeout_s,
        max_retries=credentials.max_retries,
        token_limit=config.token_limit_for(model),
    )
