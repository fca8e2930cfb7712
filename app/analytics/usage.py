from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from app.ai.types import TokenUsage
from app.analytics import db as usage_db
from app.core.config import settings

logger = logging.getLogger(__name__)

# USD per 1M tokens. The first entry of each provider is its cheapest model.
AI_PRICING: dict[str, dict[str, dict[str, float]]] = {
    "groq": {
        "gpt-oss-20b": {"input": 0.075, "output": 0.30},
    },
    "openai": {
        "gpt-4o-mini": {"input": 0.15, "output": 0.60},
        "gpt-4o": {"input": 2.50, "output": 10.00},
        "gpt-4-turbo": {"input": 10.00, "output": 30.00},
        "gpt-4": {"input": 30.00, "output": 60.00},
    },
    "anthropic": {
        "claude-3-haiku": {"input": 0.25, "output": 1.25},
        "claude-3-sonnet": {"input": 3.00, "output": 15.00},
        "claude-3-opus": {"input": 15.00, "output": 75.00},
    },
}


def _pricing_for(provider: str, model: str) -> dict[str, float] | None:
    table = AI_PRICING.get(provider)
    if not table:
        return None
    normalized = model.lower().removeprefix("openai/")
    for key in sorted(table, key=len, reverse=True):
        if normalized.startswith(key):
            return table[key]
    logger.warning("ai_pricing_unknown_model provider=%s model=%s", provider, model)
    return next(iter(table.values()))


def calculate_cost(provider: str, model: str, usage: TokenUsage) -> float:
    pricing = _pricing_for(provider, model)
    if pricing is None:
        logger.warning("ai_pricing_unknown_provider provider=%s", provider)
        return 0.0
    input_cost = usage.prompt_tokens / 1_000_000 * pricing["input"]
    output_cost = usage.completion_tokens / 1_000_000 * pricing["output"]
    return round(input_cost + output_cost, 8)


def _new_record_id() -> str:
    return f"ailog_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


@dataclass(frozen=True)
class AIUsageRecord:
    id: str
    user_id: str
    endpoint: str
    provider: str
    model: str
    usage: TokenUsage
    estimated_cost: float
    is_premium: bool
    timestamp: str
    expires_at: str
    resume_id: str | None = None

    @classmethod
    def create(
        cls,
        *,
        user_id: str,
        endpoint: str,
        provider: str,
        model: str,
        usage: TokenUsage,
        is_premium: bool,
        resume_id: str | None = None,
        retention_days: int | None = None,
    ) -> "AIUsageRecord":
        now = datetime.now(timezone.utc)
        days = max(1, int(retention_days or settings.usage_retention_days))
        return cls(
            id=_new_record_id(),
            user_id=user_id,
            resume_id=resume_id,
            endpoint=endpoint,
            provider=provider,
            model=model,
            usage=usage,
            estimated_cost=calculate_cost(provider, model, usage),
            is_premium=is_premium,
            timestamp=now.isoformat(),
            expires_at=(now + timedelta(days=days)).isoformat(),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "resume_id": self.resume_id,
            "endpoint": self.endpoint,
            "provider": self.provider,
            "model": self.model,
            "prompt_tokens": self.usage.prompt_tokens,
            "completion_tokens": self.usage.completion_tokens,
            "total_tokens": self.usage.total_tokens,
            "cached_tokens": self.usage.cached_tokens,
            "estimated_cost": self.estimated_cost,
            "is_premium": self.is_premium,
            "timestamp": self.timestamp,
            "expires_at": self.expires_at,
        }


class UsageTracker:
    """Fire-and-forget writer for usage records.

    ``track`` never raises into the caller: the insert runs in a worker thread as a
    detached task and failures only show up in the logs.
    """

    def __init__(self, db_path: str | None = None):
        self._db_path = db_path
        self._pending: set[asyncio.Task] = set()

    def track(self, record: AIUsageRecord) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("ai_usage_track_skipped id=%s: no running event loop", record.id)
            return
        task = loop.create_task(asyncio.to_thread(usage_db.insert_usage_record, record.to_row(), self._db_path))
        self._pending.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("ai_usage_track_failed: %s", exc, exc_info=exc)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
