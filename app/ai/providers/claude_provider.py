from __future__ import annotations

import logging
from typing import Any

from anthropic import AnthropicError, AsyncAnthropic

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

JSON_ONLY_SUFFIX = " Respond with a single valid JSON value and nothing else."


class ClaudeProvider:
    provider: ProviderName = "anthropic"

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float = 60.0,
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
            raise RuntimeError("ANTHROPIC_API_KEY is missing")

        self._client = AsyncAnthropic(
            api_key=key,
            base_url=base_url or None,
            timeout=timeout_s,
            max_retries=max_retries,
        )

    def build_request(self, prompt: str, options: CompletionOptions) -> dict[str, Any]:
        system = options.system_message or DEFAULT_SYSTEM_MESSAGE
        if options.json_mode:
            # The Messages API has no JSON response format, so ask for it instead.
            system += JSON_ONLY_SUFFIX
        return {
            "model": self.model,
            "max_tokens": min(options.max_tokens or DEFAULT_MAX_TOKENS, self._token_limit),
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": DEFAULT_TEMPERATURE if options.temperature is None else options.temperature,
        }

    @staticmethod
    def _usage(raw_usage: Any) -> TokenUsage:
        if raw_usage is None:
            return TokenUsage()
        input_tokens = int(getattr(raw_usage, "input_tokens", 0) or 0)
        output_tokens = int(getattr(raw_usage, "output_tokens", 0) or 0)
        cached = getattr(raw_usage, "cache_read_input_tokens", None)
        return TokenUsage(
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            cached_tokens=int(cached) if cached is not None else None,
        )

    async def complete(self, prompt: str, options: CompletionOptions) -> AIResponse:
        request = self.build_request(prompt, options)
        try:
            response = await self._client.messages.create(**request)
        except AnthropicError as exc:
            logger.warning(
                "ai_upstream_failed provider=%s model=%s prompt_len=%s: %s",
                self.provider,
                self.model,
                len(prompt),
                exc,
            )
            raise UpstreamGenerationError(
                f"Anthropic API error: {exc}", provider=self.provider, model=self.model
            ) from exc

        blocks = getattr(response, "content", None) or []
        content = "".join(
            getattr(block, "text", "") or "" for block in blocks if getattr(block, "type", "text") == "text"
        )
        usage = self._usage(getattr(response, "usage", None))
        finish_reason = getattr(response, "stop_reason", None)

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
                "Anthropic API returned empty response.", provider=self.provider, model=self.model
            )
        return AIResponse(
            content=content,
            usage=usage,
            provider=self.provider,
            model=self.model,
            finish_reason=finish_reason,
        )


def from_config(model: str, config: PipelineConfig) -> ClaudeProvider:
    credentials = config.credentials_for("anthropic")
    return ClaudeProvider(
        model=model,
        api_key=credentials.api_key,
        base_url=credentials.base_url,
        timeout_s=credentials.timeout_s,
        max_retries=credentials.max_retries,
        token_limit=config.token_limit_for(model),
    )
