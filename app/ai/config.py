import os
from dataclasses import dataclass, field

from app.ai.types import ProviderChoice

SUPPORTED_PROVIDERS = ("openai", "groq", "anthropic")

GROQ_FREE_MODEL = "openai/gpt-oss-20b"
GROQ_PREMIUM_MODEL = "llama-3.3-70b-versatile"
OPENAI_DEFAULT_MODEL = "gpt-4o"
ANTHROPIC_DEFAULT_MODEL = "claude-3-haiku-20240307"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"

# Prefix -> output token ceiling. Order matters: the first matching prefix wins.
DEFAULT_MODEL_TOKEN_LIMITS: tuple[tuple[str, int], ...] = (
    ("gpt-4o-mini", 16384),
    ("gpt-4o", 16384),
    ("gpt-4-turbo", 4096),
    ("gpt-4", 8192),
    ("gpt-5", 4000),
    ("o1-", 4000),
    ("o3-", 4000),
    ("claude-3", 4096),
)
FALLBACK_TOKEN_LIMIT = 8000


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _parse_token_limits(raw: str) -> tuple[tuple[str, int], ...]:
    """Parse MODEL_TOKEN_LIMITS='gpt-4o=16384,llama-3.3=8000' overrides."""
    overrides: list[tuple[str, int]] = []
    for item in raw.split(","):
        if "=" not in item:
            continue
        prefix, _, value = item.partition("=")
        prefix = prefix.strip().lower()
        try:
            overrides.append((prefix, int(value.strip())))
        except ValueError:
            continue
    return tuple(overrides)


@dataclass(frozen=True)
class ProviderCredentials:
    api_key: str | None = None
    base_url: str | None = None
    timeout_s: float = 30.0
    max_retries: int = 2


@dataclass(frozen=True)
class PipelineConfig:
    free_provider: str = "groq"
    free_model: str = GROQ_FREE_MODEL
    premium_provider: str = "openai"
    premium_model: str = OPENAI_DEFAULT_MODEL
    openai: ProviderCredentials = field(default_factory=ProviderCredentials)
    groq: ProviderCredentials = field(default_factory=lambda: ProviderCredentials(base_url=GROQ_BASE_URL))
    anthropic: ProviderCredentials = field(default_factory=ProviderCredentials)
    model_token_limits: tuple[tuple[str, int], ...] = DEFAULT_MODEL_TOKEN_LIMITS

    def __post_init__(self) -> None:
        for name in (self.free_provider, self.premium_provider):
            if name not in SUPPORTED_PROVIDERS:
                raise RuntimeError(
                    f"Unsupported AI provider '{name}'. Expected one of: {', '.join(SUPPORTED_PROVIDERS)}."
                )

    @property
    def free_choice(self) -> ProviderChoice:
        return ProviderChoice(provider=self.free_provider, model=self.free_model)

    @property
    def premium_choice(self) -> ProviderChoice:
        return ProviderChoice(provider=self.premium_provider, model=self.premium_model)

    def credentials_for(self, provider: str) -> ProviderCredentials:
        if provider == "openai":
            return self.openai
        if provider == "groq":
            return self.groq
        if provider == "anthropic":
            return self.anthropic
        raise ValueError(f"Unsupported AI provider '{provider}'")

    def token_limit_for(self, model: str) -> int:
        normalized = model.lower()
        for prefix, limit in self.model_token_limits:
            if normalized.startswith(prefix):
                return limit
        return FALLBACK_TOKEN_LIMIT


def _premium_model_for(provider: str) -> str:
    if provider == "groq":
        return _env("PREMIUM_GROQ_MODEL", GROQ_PREMIUM_MODEL)
    if provider == "anthropic":
        return _env("ANTHROPIC_MODEL", ANTHROPIC_DEFAULT_MODEL)
    return _env("AI_MODEL", OPENAI_DEFAULT_MODEL)


def load_pipeline_config() -> PipelineConfig:
    premium_provider = _env("PREMIUM_AI_PROVIDER", "openai").lower()
    free_provider = _env("FREE_AI_PROVIDER", "groq").lower()
    free_model = _env("FREE_AI_MODEL", GROQ_FREE_MODEL)

    overrides = _parse_token_limits(_env("MODEL_TOKEN_LIMITS"))
    return PipelineConfig(
        free_provider=free_provider,
        free_model=free_model,
        premium_provider=premium_provider,
        premium_model=_premium_model_for(premium_provider),
        openai=ProviderCredentials(
            api_key=_env("OPENAI_API_KEY") or None,
            base_url=_env("OPENAI_BASE_URL") or None,
            timeout_s=float(_env("OPENAI_TIMEOUT_S", "30")),
            max_retries=int(_env("OPENAI_MAX_RETRIES", "2")),
        ),
        groq=ProviderCredentials(
            api_key=_env("GROQ_API_KEY") or None,
            base_url=_env("GROQ_BASE_URL", GROQ_BASE_URL),
            timeout_s=float(_env("GROQ_TIMEOUT_S", "30")),
            max_retries=int(_env("GROQ_MAX_RETRIES", "2")),
        ),
        anthropic=ProviderCredentials(
            api_key=_env("ANTHROPIC_API_KEY") or None,
            base_url=_env("ANTHROPIC_BASE_URL") or None,
            timeout_s=float(_env("ANTHROPIC_TIMEOUT_S", "60")),
            max_retries=int(_env("ANTHROPIC_MAX_RETRIES", "2")),
        ),
        model_token_limits=overrides + DEFAULT_MODEL_TOKEN_LIMITS,
    )
