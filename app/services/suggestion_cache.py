from __future__ import annotations

import logging
import random
import re
import sqlite3
from datetime import datetime, timezone
from typing import Any, Sequence, TypeVar

from app.core.kv_store import SqliteKeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_WHITESPACE_RE = re.compile(r"\s+")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_key(text: str | None) -> str:
    return _WHITESPACE_RE.sub(" ", (text or "").lower()).strip()


def sample_n(payload: Sequence[T], n: int, rng: random.Random | None = None) -> list[T]:
    items = list(payload)
    if n <= 0:
        return []
    if len(items) <= n:
        return items
    return (rng or random).sample(items, n)


class SuggestionCache:
    """Language-tagged suggestion sets keyed by a normalized profession or job title.

    Entries never expire. A lookup failure is reported as a miss so the caller regenerates.
    """

    def __init__(self, store: SqliteKeyValueStore, namespace: str):
        self._store = store
        self._namespace = namespace

    @property
    def namespace(self) -> str:
        return self._namespace

    @staticmethod
    def cache_key(key: str, language: str) -> str:
        return f"{normalize_key(key)}#{language}"

    def get(self, key: str, language: str) -> dict[str, Any] | None:
        normalized = normalize_key(key)
        if not normalized:
            return None
        try:
            entry = self._store.get(self._namespace, self.cache_key(normalized, language))
        except sqlite3.Error:
            logger.exception("suggestion_cache_get_failed namespace=%s key=%s", self._namespace, normalized)
            return None
        if entry is not None:
            logger.info("suggestion_cache_hit namespace=%s key=%s lang=%s", self._namespace, normalized, language)
        return entry

    def put(self, key: str, payload: Any, language: str) -> None:
        normalized = normalize_key(key)
        if not normalized:
            return
        now = _utc_now()

        def _apply(current: dict[str, Any] | None) -> tuple[dict[str, Any], None]:
            created_at = (current or {}).get("createdAt") or now
            entry = {
                **(current or {}),
                "normalizedKey": normalized,
                "language": language,
                "payload": payload,
                "createdAt": created_at,
                "updatedAt": now,
            }
            return entry, None

        try:
            self._store.update(self._namespace, self.cache_key(normalized, language), _apply)
        except sqlite3.Error:
            logger.exception("suggestion_cache_put_failed namespace=%s key=%s", self._namespace, normalized)
