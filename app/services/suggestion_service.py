from __future__ import annotations

import logging
import random

from app.ai.types import AIRequestContext
from app.core.config import settings
from app.core.kv_store import SqliteKeyValueStore
from app.guardrails.input_sanitizer import sanitize_language, sanitize_user_input
from app.prompts.suggestions import JOB_TITLE_ACHIEVEMENT_COUNT
from app.schemas.generation import ProfessionValidation
from app.services.generation_service import PROFESSION_MAX_CHARS, GenerationPipeline
from app.services.suggestion_cache import SuggestionCache, sample_n

logger = logging.getLogger(__name__)

JOB_TITLE_ACHIEVEMENTS_RETURNED = 3
SKILL_LANGUAGES = ("es", "en")
# Validation results do not depend on the UI language.
VALIDATION_CACHE_LANGUAGE = "any"


def _cache_subject(value: str) -> str:
    # Keys use the cleaned text the prompt sees, not the raw request value.
    return sanitize_user_input(value, PROFESSION_MAX_CHARS)


class SuggestionService:
    """Cached wrappers around the suggestion tasks of the pipeline.

    Free callers are served from the cache when an entry exists. Premium callers always
    regenerate and refresh the stored entry.
    """

    def __init__(
        self,
        pipeline: GenerationPipeline,
        store: SqliteKeyValueStore,
        *,
        rng: random.Random | None = None,
    ):
        self._pipeline = pipeline
        self._job_titles = SuggestionCache(store, settings.job_title_cache_namespace)
        self._skills = SuggestionCache(store, settings.profession_suggestions_namespace)
        self._professions = SuggestionCache(store, settings.validated_professions_namespace)
        self._rng = rng

    async def job_title_achievements(self, job_title: str, language: str, ctx: AIRequestContext) -> list[str]:
        lang = sanitize_language(language)
        if not ctx.is_premium:
            entry = self._job_titles.get(_cache_subject(job_title), lang)
            if entry and entry.get("payload"):
                return sample_n(entry["payload"], JOB_TITLE_ACHIEVEMENTS_RETURNED, self._rng)

        generated = await self._pipeline.generate_job_title_achievements(job_title, lang, ctx)
        stored = generated[:JOB_TITLE_ACHIEVEMENT_COUNT]
        self._job_titles.put(_cache_subject(job_title), stored, lang)
        return sample_n(stored, JOB_TITLE_ACHIEVEMENTS_RETURNED, self._rng)

    def cached_profession_skills(self, profession: str, language: str) -> list[str] | None:
        entry = self._skills.get(_cache_subject(profession), sanitize_language(language))
        if entry and entry.get("payload"):
            return list(entry["payload"])
        return None

    async def profession_skills(self, profession: str, language: str, ctx: AIRequestContext) -> list[str]:
        lang = sanitize_language(language)
        if not ctx.is_premium:
            cached = self.cached_profession_skills(profession, lang)
            if cached is not None:
                return cached

        result = await self._pipeline.generate_profession_suggestions(profession, ctx)
        by_language = {"es": result.es.skills, "en": result.en.skills}
        for code in SKILL_LANGUAGES:
            self._skills.put(_cache_subject(profession), by_language[code], code)
        return by_language[lang]

    def cached_profession_validation(self, profession: str) -> ProfessionValidation | None:
        """Checked by the route before the quota is touched."""
        entry = self._professions.get(_cache_subject(profession), VALIDATION_CACHE_LANGUAGE)
        if entry and entry.get("payload"):
            return ProfessionValidation(is_valid=True)
        return None

    async def validate_profession(self, profession: str, ctx: AIRequestContext) -> ProfessionValidation:
        result = await self._pipeline.validate_profession(profession, ctx)
        if result.is_valid:
            self._professions.put(_cache_subject(profession), True, VALIDATION_CACHE_LANGUAGE)
        else:
            logger.info("profession_rejected length=%s", len(profession or ""))
        return result
