from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Protocol

ProviderName = Literal["openai", "groq", "anthropic"]

DEFAULT_SYSTEM_MESSAGE = (
    "You are an expert in human resources and professional resume writing. "
    "Generate optimized and structured CVs."
)
DEFAULT_TEMPERATURE = 0.1
DEFAULT_MAX_TOKENS = 8000


class GenerationTask(str, Enum):
    GENERATE_RESUME = "generateResume"
    ENHANCE_TEXT = "enhanceText"
    IMPROVE_SECTION = "improveSection"
    PARSE_LINKEDIN_DATA = "parseLinkedInData"
    GENERATE_ACHIEVEMENTS = "generateAchievements"
    GENERATE_SUMMARY = "generateSummary"
    GENERATE_JOB_TITLE_ACHIEVEMENTS = "generateJobTitleAchievements"
    VALIDATE_PROFESSION = "validateProfession"
    GENERATE_ENHANCEMENT_QUESTIONS = "generateEnhancementQuestions"
    GENERATE_ANSWER_SUGGESTION = "generateAnswerSuggestion"
    DIRECT_ENHANCE = "directEnhance"
    GENERATE_PROFESSION_SUGGESTIONS = "generateProfessionSuggestions"


@dataclass(frozen=True)
class AIRequestContext:
    user_id: str
    is_premium: bool = False
    resume_id: str | None = None


@dataclass(frozen=True)
class ProviderChoice:
    provider: ProviderName
    model: str


@dataclass(frozen=True)
class CompletionOptions:
    temperature: float | None = None
    max_tokens: int | None = None
    json_mode: bool = False
    system_message: str | None = None


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cached_tokens: int | None = None

    def to_dict(self) -> dict[str, int | None]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
            "cachedTokens": self.cached_tokens,
        }


@dataclass(frozen=True)
class AIResponse:
    content: str
    usage: TokenUsage
    provider: ProviderName
    model: str
    finish_reason: str | None = None


class ProviderAdapter(Protocol):
    provider: ProviderName
    model: str

    async def complete(self, prompt: str, options: CompletionOptions) -> AIResponse: ...
