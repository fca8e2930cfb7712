from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_limits(name: str, default: tuple[int, int]) -> tuple[int, int]:
    """Parse 'free/premium' max-request pairs such as '1/10'."""
    raw = _get_env(name, None)
    if raw is None:
        return default
    parts = [item.strip() for item in raw.split("/")]
    try:
        if len(parts) == 1:
            value = int(parts[0])
            return value, value
        return int(parts[0]), int(parts[1])
    except ValueError:
        return default


# endpoint -> (free max, premium max) per window
DEFAULT_ENDPOINT_LIMITS: dict[str, tuple[int, int]] = {
    "generate-resume": (1, 5),
    "ai-enhance": (5, 5),
    "improve-section": (1, 10),
    "linkedin-data-parsing": (1, 5),
    "achievement-suggestions": (5, 5),
    "summary-suggestions": (1, 10),
    "experience-achievements": (5, 5),
    "validate-profession": (2, 5),
    "profession-suggestions": (5, 5),
    "enhancement-questions": (10, 10),
    "answer-suggestion": (20, 20),
    "ai-direct-enhance": (10, 10),
}


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    rate_limit: str
    rate_limit_enabled: bool
    log_level: str
    sentry_dsn: str | None
    kv_store_db_path: str
    usage_tracking_enabled: bool
    usage_db_path: str
    usage_retention_days: int
    user_rate_limit_window_ms: int
    endpoint_limits: tuple[tuple[str, int, int], ...]
    job_title_cache_namespace: str
    profession_suggestions_namespace: str
    validated_professions_namespace: str

    def limit_for(self, endpoint: str, is_premium: bool) -> int:
        for name, free_max, premium_max in self.endpoint_limits:
            if name == endpoint:
                return premium_max if is_premium else free_max
        raise KeyError(f"No rate limit configured for endpoint '{endpoint}'")


def _endpoint_limits() -> tuple[tuple[str, int, int], ...]:
    rows = []
    for endpoint, default in DEFAULT_ENDPOINT_LIMITS.items():
        env_name = "RATE_LIMIT_" + endpoint.upper().replace("-", "_")
        free_max, premium_max = _get_env_limits(env_name, default)
        rows.append((endpoint, free_max, premium_max))
    return tuple(rows)


settings = Settings(
    api_key=_get_env("API_KEY"),
    rate_limit=_get_env("RATE_LIMIT", "60/minute") or "60/minute",
    rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    kv_store_db_path=_get_env("KV_STORE_DB_PATH", "data/pipeline_store.db") or "data/pipeline_store.db",
    usage_tracking_enabled=_get_env_bool("AI_USAGE_TRACKING_ENABLED", True),
    usage_db_path=_get_env("AI_USAGE_DB_PATH", "data/ai_usage.db") or "data/ai_usage.db",
    usage_retention_days=_get_env_int("AI_USAGE_RETENTION_DAYS", 90),
    user_rate_limit_window_ms=_get_env_int("USER_RATE_LIMIT_WINDOW_MS", 60000),
    endpoint_limits=_endpoint_limits(),
    job_title_cache_namespace=_get_env("JOB_TITLE_ACHIEVEMENTS_TABLE", "job_title_achievements")
    or "job_title_achievements",
    profession_suggestions_namespace=_get_env("PROFESSION_SUGGESTIONS_TABLE", "profession_suggestions")
    or "profession_suggestions",
    validated_professions_namespace=_get_env("VALIDATED_PROFESSIONS_TABLE", "validated_professions")
    or "validated_professions",
)

if settings.user_rate_limit_window_ms <= 0:
    raise RuntimeError("USER_RATE_LIMIT_WINDOW_MS must be a positive number of milliseconds.")
