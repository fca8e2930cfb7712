from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Sequence

from pydantic import ValidationError as SchemaError

from app.ai.config import PipelineConfig
from app.ai.factory import ProviderRegistry, select_provider
from app.ai.providers.openai_provider import has_restricted_parameters
from app.ai.types import AIRequestContext, AIResponse, CompletionOptions, ProviderChoice
from app.analytics.usage import AIUsageRecord, UsageTracker
from app.core.errors import ParseError, PipelineError, ValidationError
from app.core.user_rate_limit import log_suspicious_activity
from app.guardrails.input_sanitizer import (
    sanitize_for_prompt,
    sanitize_language,
    sanitize_section_type,
    sanitize_summary_type,
    sanitize_user_input,
    sanitize_user_multiline,
    validate_input,
)
from app.guardrails.output_validator import (
    find_unsupported_metrics,
    validate_improved_text,
    validate_mechanical_enhancement,
)
from app.parsing.response_parser import parse_response
from app.prompts import enhancement, resume, suggestions
from app.prompts.common import PromptSpec
from app.schemas.generation import (
    AchievementSuggestion,
    EnhancementQuestion,
    GatheredAnswer,
    GeneratedResume,
    ImprovementResult,
    LinkedInDataRequest,
    ParsedLinkedInProfile,
    ProfessionSkills,
    ProfessionValidation,
    ProjectItem,
    ResumeData,
    ResumeMetadata,
)

logger = logging.getLogger(__name__)

PROFESSION_MAX_CHARS = 200
ANSWER_MAX_CHARS = 1000
_LONG_TEXT_FIELDS = {"summary", "job_description"}

OptionsHook = Callable[[ProviderChoice, CompletionOptions], CompletionOptions]


def _short_hash(value: str | None) -> str:
    normalized = (value or "").strip()
    if not normalized:
        return ""
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:12]


def _sanitize_tree(value: Any, field: str | None = None) -> Any:
    if isinstance(value, str):
        if field in _LONG_TEXT_FIELDS:
            return sanitize_for_prompt(value)
        return sanitize_user_input(value)
    if isinstance(value, list):
        return [_sanitize_tree(item, field) for item in value]
    if isinstance(value, dict):
        return {key: _sanitize_tree(item, key) for key, item in value.items()}
    return value


def _linkedin_options(choice: ProviderChoice, options: CompletionOptions) -> CompletionOptions:
    # Reasoning models spend part of the completion budget before emitting the large JSON document.
    if choice.provider == "openai" and has_restricted_parameters(choice.model):
        return dataclasses.replace(options, max_tokens=resume.LINKEDIN_RESTRICTED_MAX_TOKENS)
    return options


def _fallback(original: str, reason: str) -> ImprovementResult:
    return ImprovementResult(text=original, improved=False, reason=reason)


class GenerationPipeline:
    """Entry points for every generation task.

    Each call runs prompt building, provider selection, the vendor call, response
    parsing, output validation and usage tracking. Instances hold configuration and
    clients only, never per-request state.
    """

    def __init__(self, registry: ProviderRegistry, usage_tracker: UsageTracker | None = None):
        self._registry = registry
        self._usage = usage_tracker

    @property
    def config(self) -> PipelineConfig:
        return self._registry.config

    def _track(self, ctx: AIRequestContext, spec: PromptSpec, response: AIResponse, is_premium: bool) -> None:
        if self._usage is None:
            return
        try:
            record = AIUsageRecord.create(
                user_id=ctx.user_id,
                resume_id=ctx.resume_id,
                endpoint=spec.task.value,
                provider=response.provider,
                model=response.model,
                usage=response.usage,
                is_premium=is_premium,
            )
            self._usage.track(record)
        except Exception as exc:
            logger.warning("ai_usage_record_failed task=%s: %s", spec.task.value, exc, exc_info=True)

    async def _run(
        self,
        ctx: AIRequestContext,
        spec: PromptSpec,
        *,
        force_premium: bool = False,
        options_hook: OptionsHook | None = None,
    ) -> tuple[Any, AIResponse]:
        started_at = time.perf_counter()
        is_premium = ctx.is_premium or force_premium
        choice = select_provider(is_premium, self.config)
        adapter = self._registry.adapter_for(choice)
        options = options_hook(choice, spec.options) if options_hook else spec.options

        status = "error"
        error_code: str | None = None
        response: AIResponse | None = None
        try:
            response = await adapter.complete(spec.prompt, options)
            self._track(ctx, spec, response, is_premium)
            parsed = parse_response(spec.task, response.content)
            status = "ok"
            return parsed, response
        except PipelineError as exc:
            error_code = exc.code
            raise
        finally:
            logger.info(
                json.dumps(
                    {
                        "event": "ai_generation",
                        "task": spec.task.value,
                        "status": status,
                        "error_code": error_code,
                        "provider": choice.provider,
                        "model": choice.model,
                        "is_premium": is_premium,
                        "user_hash": _short_hash(ctx.user_id),
                        "prompt_len": len(spec.prompt),
                        "total_tokens": response.usage.total_tokens if response else None,
                        "duration_ms": int((time.perf_counter() - started_at) * 1000),
                    }
                )
            )

    def _guard_instructions(self, ctx: AIRequestContext, instructions: str, task: str) -> str | None:
        validation = validate_input(instructions)
        if validation.is_valid:
            return None
        log_suspicious_activity(
            ctx.user_id,
            "invalid_ai_instructions",
            {"task": task, "reason": validation.reason, "input_hash": _short_hash(instructions)},
        )
        return validation.reason or "Input rejected"

    @staticmethod
    def _require_text(value: str, message: str) -> str:
        if not value.strip():
            raise ValidationError(message)
        return value

    @staticmethod
    def _reject_fabricated(output: str, sources: Iterable[str]) -> str | None:
        unsupported = find_unsupported_metrics(output, sources)
        if unsupported:
            return f"Output introduces metrics not present in the input: {', '.join(unsupported)}"
        return None

    def _filter_fabricated(self, task: str, items: list[Any], text_of: Callable[[Any], str], sources: list[str]) -> list[Any]:
        kept = [item for item in items if not find_unsupported_metrics(text_of(item), sources)]
        dropped = len(items) - len(kept)
        if dropped:
            logger.warning("ai_output_fabricated_metrics task=%s dropped=%s kept=%s", task, dropped, len(kept))
        if not kept:
            raise ParseError(f"Every {task} suggestion contained unsupported metrics", task=task)
        return kept

    async def generate_resume(self, data: ResumeData, ctx: AIRequestContext) -> GeneratedResume:
        try:
            clean = ResumeData.model_validate(_sanitize_tree(data.model_dump()))
        except SchemaError as exc:
            raise ValidationError(f"Invalid resume data: {exc.error_count()} errors", user_message="Invalid resume data") from exc

        reason = self._guard_instructions(ctx, clean.profession, "generateResume")
        if reason:
            raise ValidationError(f"Invalid input: {reason}", user_message="Invalid profession")

        spec = resume.build_resume_prompt(clean)
        generated, response = await self._run(ctx, spec)
        metadata = ResumeMetadata(
            generated_at=datetime.now(timezone.utc).isoformat(),
            tokens_used=response.usage.total_tokens,
            ai_provider=response.provider,
            model=response.model,
        )
        return generated.model_copy(update={"metadata": metadata})

    async def enhance_text(
        self,
        context: str,
        text: str,
        language: str,
        ctx: AIRequestContext,
        job_title: str | None = None,
    ) -> ImprovementResult:
        original = self._require_text(text if isinstance(text, str) else "", "Text is required")
        clean_text = sanitize_for_prompt(original)
        clean_title = sanitize_user_input(job_title) if job_title else None
        spec = enhancement.build_enhance_text_prompt(context, clean_text, sanitize_language(language), clean_title)

        improved, _ = await self._run(ctx, spec)
        validation = validate_improved_text(improved, original, context)
        if not validation.is_valid:
            logger.warning("ai_output_rejected task=enhanceText reason=%s", validation.reason)
            return _fallback(original, validation.reason or "Output validation failed")
        fabricated = self._reject_fabricated(improved, [original, clean_title or ""])
        if fabricated:
            logger.warning("ai_output_rejected task=enhanceText reason=%s", fabricated)
            return _fallback(original, fabricated)
        return ImprovementResult(text=improved, improved=True)

    async def improve_section(
        self,
        section_type: str,
        original_text: str,
        user_instructions: str,
        language: str,
        ctx: AIRequestContext,
        gathered_context: Sequence[GatheredAnswer] | None = None,
    ) -> ImprovementResult:
        section = sanitize_section_type(section_type)
        lang = sanitize_language(language)
        original = self._require_text(original_text if isinstance(original_text, str) else "", "Original text is required")
        instructions = sanitize_user_input(user_instructions)

        reason = self._guard_instructions(ctx, instructions, "improveSection")
        if reason:
            return _fallback(original, f"Invalid input: {reason}")

        answers = [
            GatheredAnswer(question_id=item.question_id, answer=sanitize_user_input(item.answer, ANSWER_MAX_CHARS))
            for item in gathered_context or ()
        ]
        spec = enhancement.build_section_improvement_prompt(
            section, sanitize_for_prompt(original), instructions, lang, answers
        )
        improved, _ = await self._run(ctx, spec)

        validation = validate_improved_text(improved, original, section)
        if not validation.is_valid:
            logger.warning("ai_output_rejected task=improveSection section=%s reason=%s", section, validation.reason)
            return _fallback(original, validation.reason or "Output validation failed")
        fabricated = self._reject_fabricated(improved, [original, instructions, *(a.answer for a in answers)])
        if fabricated:
            logger.warning("ai_output_rejected task=improveSection section=%s reason=%s", section, fabricated)
            return _fallback(original, fabricated)
        return ImprovementResult(text=improved, improved=True)

    async def parse_linkedin_data(self, request: LinkedInDataRequest, ctx: AIRequestContext) -> ParsedLinkedInProfile:
        clean = request.model_copy(
            update={
                "profession": sanitize_user_input(request.profession, PROFESSION_MAX_CHARS),
                "about": sanitize_user_multiline(request.about),
                "experience": sanitize_user_multiline(request.experience),
                "education": sanitize_user_multiline(request.education),
                "certifications": sanitize_user_multiline(request.certifications),
                "projects": sanitize_user_multiline(request.projects),
                "skills": sanitize_user_multiline(request.skills),
                "recommendations": sanitize_user_multiline(request.recommendations),
            }
        )
        if not (clean.about or clean.experience or clean.education):
            raise ValidationError("At least one of about, experience or education is required")

        spec = resume.build_linkedin_prompt(clean)
        profile, _ = await self._run(ctx, spec, options_hook=_linkedin_options)
        if clean.profession:
            # The user's own profession always wins over whatever the model inferred.
            profile = profile.model_copy(update={"profession": clean.profession})
        return profile

    async def generate_achievements(
        self,
        profession: str,
        projects: Sequence[ProjectItem],
        language: str,
        ctx: AIRequestContext,
    ) -> list[AchievementSuggestion]:
        clean_profession = self._require_text(sanitize_user_input(profession, PROFESSION_MAX_CHARS), "Profession is required")
        clean_projects = [
            ProjectItem.model_validate(_sanitize_tree(project.model_dump())) for project in projects
        ]
        spec = suggestions.build_achievements_prompt(clean_profession, clean_projects, sanitize_language(language))
        items, _ = await self._run(ctx, spec)

        sources = [clean_profession]
        for project in clean_projects:
            sources.extend([project.name, project.description, *project.technologies])
        return self._filter_fabricated(
            spec.task.value, items, lambda item: f"{item.title} {item.description}", sources
        )

    async def generate_summary(
        self,
        profession: str,
        achievements: Sequence[str],
        project_descriptions: Sequence[str],
        language: str,
        summary_type: str,
        ctx: AIRequestContext,
    ) -> list[str]:
        clean_profession = self._require_text(sanitize_user_input(profession, PROFESSION_MAX_CHARS), "Profession is required")
        clean_achievements = [text for text in (sanitize_user_input(a) for a in achievements) if text]
        clean_projects = [text for text in (sanitize_user_input(p) for p in project_descriptions) if text]
        spec = suggestions.build_summary_prompt(
            clean_profession,
            clean_achievements,
            clean_projects,
            sanitize_language(language),
            sanitize_summary_type(summary_type),
        )
        items, _ = await self._run(ctx, spec)
        return self._filter_fabricated(
            spec.task.value, items, lambda item: item, [clean_profession, *clean_achievements, *clean_projects]
        )

    async def generate_job_title_achievements(self, job_title: str, language: str, ctx: AIRequestContext) -> list[str]:
        clean_title = self._require_text(sanitize_user_input(job_title, PROFESSION_MAX_CHARS), "Job title is required")
        spec = suggestions.build_job_title_achievements_prompt(clean_title, sanitize_language(language))
        items, _ = await self._run(ctx, spec)
        return self._filter_fabricated(spec.task.value, items, lambda item: item, [clean_title])

    async def validate_profession(self, profession: str, ctx: AIRequestContext) -> ProfessionValidation:
        clean = self._require_text(sanitize_user_input(profession, PROFESSION_MAX_CHARS), "Profession cannot be empty")
        spec = suggestions.build_profession_validation_prompt(clean)
        result, _ = await self._run(ctx, spec)
        return result

    async def generate_profession_suggestions(self, profession: str, ctx: AIRequestContext) -> ProfessionSkills:
        clean = self._require_text(sanitize_user_input(profession, PROFESSION_MAX_CHARS), "Profession is required")
        spec = suggestions.build_profession_skills_prompt(clean)
        result, _ = await self._run(ctx, spec)
        return result

    async def generate_enhancement_questions(
        self,
        section_type: str,
        recommendation: str,
        original_text: str,
        language: str,
        ctx: AIRequestContext,
    ) -> list[EnhancementQuestion]:
        section = sanitize_section_type(section_type)
        clean_recommendation = self._require_text(sanitize_user_input(recommendation), "Recommendation is required")
        clean_original = sanitize_for_prompt(original_text)
        spec = enhancement.build_enhancement_questions_prompt(
            section, clean_recommendation, clean_original, sanitize_language(language)
        )
        questions, _ = await self._run(ctx, spec, force_premium=True)
        return questions

    async def generate_answer_suggestion(
        self,
        question: str,
        question_category: str,
        original_text: str,
        recommendation: str,
        section_type: str,
        language: str,
        ctx: AIRequestContext,
    ) -> str:
        section = sanitize_section_type(section_type)
        clean_question = self._require_text(sanitize_user_input(question), "Question is required")
        spec = enhancement.build_answer_suggestion_prompt(
            clean_question,
            sanitize_user_input(question_category, 50),
            sanitize_for_prompt(original_text),
            sanitize_user_input(recommendation),
            section,
            sanitize_language(language),
        )
        answer, _ = await self._run(ctx, spec, force_premium=True)
        return answer

    async def direct_enhance(
        self,
        checklist_item_id: str,
        section_type: str,
        original_text: str,
        language: str,
        ctx: AIRequestContext,
    ) -> ImprovementResult:
        section = sanitize_section_type(section_type)
        original = self._require_text(original_text if isinstance(original_text, str) else "", "Original text is required")
        spec = enhancement.build_direct_enhance_prompt(
            sanitize_user_input(checklist_item_id, 100),
            section,
            sanitize_for_prompt(original),
            sanitize_language(language),
        )
        improved, _ = await self._run(ctx, spec, force_premium=True)

        validation = validate_mechanical_enhancement(improved, original)
        if not validation.is_valid:
            logger.warning("ai_output_rejected task=directEnhance item=%s reason=%s", checklist_item_id, validation.reason)
            return _fallback(original, validation.reason or "Output validation failed")
        fabricated = self._reject_fabricated(improved, [original])
        if fabricated:
            logger.warning("ai_output_rejected task=directEnhance item=%s reason=%s", checklist_item_id, fabricated)
            return _fallback(original, fabricated)
        return ImprovementResult(text=improved, improved=True)
