from __future__ import annotations

import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from typing import Any, Callable

from app.core.kv_store import SqliteKeyValueStore

logger = logging.getLogger(__name__)

RATE_LIMIT_NAMESPACE = "rate_limits"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_time: int

    def to_dict(self) -> dict[str, Any]:
        return {"allowed": self.allowed, "remaining": self.remaining, "resetTime": self.reset_time}


class QuotaReservation:
    """A consumed slot that can be handed back once if the downstream call fails."""

    def __init__(self, limiter: "UserRateLimiter", user_id: str, endpoint: str, decision: RateLimitDecision):
        self._limiter = limiter
        self.user_id = user_id
        self.endpoint = endpoint
        self.decision = decision
        self._refunded = False

    @property
    def allowed(self) -> bool:
        return self.decision.allowed

    @property
    def refunded(self) -> bool:
        return self._refunded

    def refund(self) -> None:
        if self._refunded or not self.decision.allowed:
            return
        self._refunded = True
        self._limiter.refund_rate_limit(self.user_id, self.endpoint)


class UserRateLimiter:
    """Fixed window counter per (user, endpoint) with refund support."""

    def __init__(self, store: SqliteKeyValueStore, *, clock: Callable[[], int] = _now_ms):
        self._store = store
        self._clock = clock

    @staticmethod
    def window_key(user_id: str, endpoint: str) -> str:
        return f"{user_id}-{endpoint}"

    def check_rate_limit(self, user_id: str, endpoint: str, max_requests: int, window_ms: int) -> RateLimitDecision:
        now = self._clock()
        if not user_id or not endpoint:
            logger.warning("rate_limit_invalid_params user_id=%r endpoint=%r", user_id, endpoint)
            return RateLimitDecision(allowed=False, remaining=0, reset_time=now + window_ms)

        def _apply(current: dict[str, Any] | None) -> tuple[dict[str, Any] | None, RateLimitDecision]:
            if current is None or now - int(current.get("windowStart", 0)) > window_ms:
                window = {"userId": user_id, "endpoint": endpoint, "windowStart": now, "count": 1}
                decision = RateLimitDecision(
                    allowed=max_requests >= 1,
                    remaining=max(0, max_requests - 1),
                    reset_time=now + window_ms,
                )
                if not decision.allowed:
                    return current, decision
                return window, decision

            window_start = int(current["windowStart"])
            count = int(current.get("count", 0))
            reset_time = window_start + window_ms
            if count >= max_requests:
                return current, RateLimitDecision(allowed=False, remaining=0, reset_time=reset_time)

            updated = {**current, "count": count + 1}
            return updated, RateLimitDecision(
                allowed=True,
                remaining=max(0, max_requests - count - 1),
                reset_time=reset_time,
            )

        key = self.window_key(user_id, endpoint)
        try:
            return self._store.update(RATE_LIMIT_NAMESPACE, key, _apply)
        except sqlite3.Error:
            # Quota store outages must not take generation down with them.
            logger.exception("rate_limit_store_failed key=%s", key)
            return RateLimitDecision(allowed=True, remaining=max_requests, reset_time=now + window_ms)

    def refund_rate_limit(self, user_id: str, endpoint: str) -> None:
        if not user_id or not endpoint:
            return

        def _apply(current: dict[str, Any] | None) -> tuple[dict[str, Any] | None, int]:
            if current is None:
                return None, 0
            count = max(0, int(current.get("count", 0)) - 1)
            return {**current, "count": count}, count

        key = self.window_key(user_id, endpoint)
        try:
            remaining_count = self._store.update(RATE_LIMIT_NAMESPACE, key, _apply)
        except sqlite3.Error:
            logger.exception("rate_limit_refund_failed key=%s", key)
            return
        logger.info("rate_limit_refunded key=%s count=%s", key, remaining_count)

    def reserve(self, user_id: str, endpoint: str, max_requests: int, window_ms: int) -> QuotaReservation:
        decision = self.check_rate_limit(user_id, endpoint, max_requests, window_ms)
        return QuotaReservation(self, user_id, endpoint, decision)

    def clear(self) -> None:
        self._store.clear(RATE_LIMIT_NAMESPACE)


def log_suspicious_activity(user_id: str, activity: str, details: dict[str, Any] | None = None) -> None:
    logger.warning(
        json.dumps(
            {
                "event": "suspicious_activity",
                "user_id": user_id,
                "activity": activity,
                "details": details or {},
            },
            ensure_ascii=False,
        )
    )
