import dataclasses
import logging
from functools import lru_cache
from typing import Awaitable, Callable, NoReturn, TypeVar

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from app.ai.config import load_pipeline_config
from app.ai.factory import ProviderRegistry
from app.ai.types import AIRequestContext
from app.analytics.usage import UsageTracker
from app.core.config import settings
from app.core.errors import InvalidProfessionError, PipelineError, SemanticRejection, SystemFailure
from app.core.kv_store import SqliteKeyValueStore
from app.core.rate_limit import rate_limit
from app.core.security import resolve_caller
from app.core.user_rate_limit import UserRateLimiter
from app.schemas.ai import (
    AchievementSuggestionsRequest,
    AchievementSuggestionsResponse,
    AnswerSuggestionRequest,
    AnswerSuggestionResponse,
    DirectEnhanceRequest,
    EnhancementQuestionsRequest,
    EnhancementQuestionsResponse,
    EnhanceTextRequest,
    GenerateResumeRequest,
    ImproveSectionRequest,
    JobTitleAchievementsRequest,
    JobTitleAchievementsResponse,
    LinkedInParseRequest,
    ProfessionSuggestionsRequest,
    ProfessionSuggestionsResponse,
    SummarySuggestionsRequest,
    SummarySuggestionsResponse,
    ValidateProfessionRequest,
)
from app.schemas.generation import GeneratedResume, ImprovementResult, ParsedLinkedInProfile, ProfessionValidation
from app.services.generation_service import GenerationPipeline
from app.services.suggestion_service import SuggestionService

logger = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")


@lru_cache(maxsize=1)
def get_store() -> SqliteKeyValueStore:
    return SqliteKeyValueStore(settings.kv_store_db_path)


@lru_cache(maxsize=1)
def get_usage_tracker() -> UsageTracker:
    return UsageTracker()


@lru_cache(maxsize=1)
def get_pipeline() -> GenerationPipeline:
    return GenerationPipeline(ProviderRegistry(load_pipeline_config()), get_usage_tracker())


def get_rate_limiter(store: SqliteKeyValueStore = Depends(get_store)) -> UserRateLimiter:
    return UserRateLimiter(store)


def get_suggestion_service(
    pipeline: GenerationPipeline = Depends(get_pipeline),
    store: SqliteKeyValueStore = Depends(get_store),
) -> SuggestionService:
    return SuggestionService(pipeline, store)


def get_request_context(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_premium: str | None = Header(default=None, alias="X-User-Premium"),
    accept_language: str | None = Header(default=None, alias="Accept-Language"),
) -> AIRequestContext:
    return resolve_caller(x_api_key, x_user_id, x_user_premium, accept_language)


def _raise_http_error(exc: PipelineError) -> NoReturn:
    detail = {"code": exc.code, "message": exc.user_message}
    if isinstance(exc, InvalidProfessionError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail) from exc
    if isinstance(exc, SemanticRejection):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail) from exc
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail) from exc


async def _with_quota(
    limiter: UserRateLimiter,
    ctx: AIRequestContext,
    endpoint: str,
    call: Callable[[], Awaitable[T]],
) -> T:
    reservation = limiter.reserve(
        ctx.user_id,
        endpoint,
        settings.limit_for(endpoint, ctx.is_premium),
        settings.user_rate_limit_window_ms,
    )
    if not reservation.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "code": "RATE_LIMITED",
                "message": "Rate limit exceeded. Please try again later.",
                "resetTime": reservation.decision.reset_time,
            },
        )

    try:
        return await call()
    except SemanticRejection as exc:
        logger.info("ai_request_rejected endpoint=%s code=%s", endpoint, exc.code)
        _raise_http_error(exc)
    except SystemFailure as exc:
        reservation.refund()
        logger.warning("ai_request_failed endpoint=%s code=%s: %s", endpoint, exc.code, exc)
        _raise_http_error(exc)
    except Exception:
        reservation.refund()
        raise


def _with_resume(ctx: AIRequestContext, resume_id: str | None) -> AIRequestContext:
    if not resume_id:
        return ctx
    return dataclasses.replace(ctx, resume_id=resume_id)


@router.post("/ai/generate-resume", response_model=GeneratedResume)
@rate_limit()
async def generate_resume(
    request: Request,
    payload: GenerateResumeRequest,
    ctx: AIRequestContext = Depends(get_request_context),
    pipeline: GenerationPipeline = Depends(get_pipeline),
    limiter: UserRateLimiter = Depends(get_rate_limiter),
):
    _ = request
    ctx = _with_resume(ctx, payload.resume_id)
    return await _with_quota(limiter, ctx, "generate-resume", lambda: pipeline.generate_resume(payload, ctx))


@router.post("/ai/enhance", response_model=ImprovementResult)
@rate_limit()
async def enhance_text(
    request: Request,
    payload: EnhanceTextRequest,
    ctx: AIRequestContext = Depends(get_request_context),
    pipeline: GenerationPipeline = Depends(get_pipeline),
    limiter: UserRateLimiter = Depends(get_rate_limiter),
):
    _ = request
    ctx = _with_resume(ctx, payload.resume_id)
    return await _with_quota(
        limiter,
        ctx,
        "ai-enhance",
        lambda: pipeline.enhance_text(payload.context, payload.text, payload.language, ctx, payload.job_title),
    )


@router.post("/ai/improve-section", response_model=ImprovementResult)
@rate_limit()
async def improve_section(
    request: Request,
    payload: ImproveSectionRequest,
    ctx: AIRequestContext = Depends(get_request_context),
    pipeline: GenerationPipeline = Depends(get_pipeline),
    limiter: UserRateLimiter = Depends(get_rate_limiter),
):
    _ = request
    ctx = _with_resume(ctx, payload.resume_id)
    return await _with_quota(
        limiter,
        ctx,
        "improve-section",
        lambda: pipeline.improve_section(
            payload.section_type,
            payload.original_text,
            payload.user_instructions,
            payload.language,
            ctx,
            payload.gathered_context,
        ),
    )


@router.post("/ai/linkedin-data-parsing", response_model=ParsedLinkedInProfile)
@rate_limit()
async def parse_linkedin_data(
    request: Request,
    payload: LinkedInParseRequest,
    ctx: AIRequestContext = Depends(get_request_context),
    pipeline: GenerationPipeline = Depends(get_pipeline),
    limiter: UserRateLimiter = Depends(get_rate_limiter),
):
    _ = request
    ctx = _with_resume(ctx, payload.resume_id)
    return await _with_quota(
        limiter, ctx, "linkedin-data-parsing", lambda: pipeline.parse_linkedin_data(payload, ctx)
    )


@router.post("/ai/achievement-suggestions", response_model=AchievementSuggestionsResponse)
@rate_limit()
async def achievement_suggestions(
    request: Request,
    payload: AchievementSuggestionsRequest,
    ctx: AIRequestContext = Depends(get_request_context),
    pipeline: GenerationPipeline = Depends(get_pipeline),
    limiter: UserRateLimiter = Depends(get_rate_limiter),
):
    _ = request
    achievements = await _with_quota(
        limiter,
        ctx,
        "achievement-suggestions",
        lambda: pipeline.generate_achievements(payload.profession, payload.projects, payload.language, ctx),
    )
    return AchievementSuggestionsResponse(achievements=achievements)


@router.post("/ai/summary-suggestions", response_model=SummarySuggestionsResponse)
@rate_limit()
async def summary_suggestions(
    request: Request,
    payload: SummarySuggestionsRequest,
    ctx: AIRequestContext = Depends(get_request_context),
    pipeline: GenerationPipeline = Depends(get_pipeline),
    limiter: UserRateLimiter = Depends(get_rate_limiter),
):
    _ = request
    summaries = await _with_quota(
        limiter,
        ctx,
        "summary-suggestions",
        lambda: pipeline.generate_summary(
            payload.profession,
            payload.achievements,
            payload.project_descriptions,
            payload.language,
            payload.summary_type,
            ctx,
        ),
    )
    return SummarySuggestionsResponse(summaries=summaries)


@router.post("/ai/experience-achievements", response_model=JobTitleAchievementsResponse)
@rate_limit()
async def experience_achievements(
    request: Request,
    payload: JobTitleAchievementsRequest,
    ctx: AIRequestContext = Depends(get_request_context),
    service: SuggestionService = Depends(get_suggestion_service),
    limiter: UserRateLimiter = Depends(get_rate_limiter),
):
    _ = request
    achievements = await _with_quota(
        limiter,
        ctx,
        "experience-achievements",
        lambda: service.job_title_achievements(payload.job_title, payload.language, ctx),
    )
    return JobTitleAchievementsResponse(achievements=achievements)


@router.post("/ai/validate-profession", response_model=ProfessionValidation)
@rate_limit()
async def validate_profession(
    request: Request,
    payload: ValidateProfessionRequest,
    ctx: AIRequestContext = Depends(get_request_context),
    service: SuggestionService = Depends(get_suggestion_service),
    limiter: UserRateLimiter = Depends(get_rate_limiter),
):
    _ = request
    # Known-good professions are answered without spending quota.
    cached = service.cached_profession_validation(payload.profession)
    if cached is not None:
        return cached
    return await _with_quota(
        limiter, ctx, "validate-profession", lambda: service.validate_profession(payload.profession, ctx)
    )


@router.post("/ai/profession-suggestions", response_model=ProfessionSuggestionsResponse)
@rate_limit()
async def profession_suggestions(
    request: Request,
    payload: ProfessionSuggestionsRequest,
    ctx: AIRequestContext = Depends(get_request_context),
    service: SuggestionService = Depends(get_suggestion_service),
    limiter: UserRateLimiter = Depends(get_rate_limiter),
):
    _ = request
    skills = await _with_quota(
        limiter,
        ctx,
        "profession-suggestions",
        lambda: service.profession_skills(payload.profession, payload.language, ctx),
    )
    return ProfessionSuggestionsResponse(skills=skills)


@router.post("/ai/enhancement-questions", response_model=EnhancementQuestionsResponse)
@rate_limit()
async def enhancement_questions(
    request: Request,
    payload: EnhancementQuestionsRequest,
    ctx: AIRequestContext = Depends(get_request_context),
    pipeline: GenerationPipeline = Depends(get_pipeline),
    limiter: UserRateLimiter = Depends(get_rate_limiter),
):
    _ = request
    questions = await _with_quota(
        limiter,
        ctx,
        "enhancement-questions",
        lambda: pipeline.generate_enhancement_questions(
            payload.section_type, payload.recommendation, payload.original_text, payload.language, ctx
        ),
    )
    return EnhancementQuestionsResponse(questions=questions)


@router.post("/ai/answer-suggestion", response_model=AnswerSuggestionResponse)
@rate_limit()
async def answer_suggestion(
    request: Request,
    payload: AnswerSuggestionRequest,
    ctx: AIRequestContext = Depends(get_request_context),
    pipeline: GenerationPipeline = Depends(get_pipeline),
    limiter: UserRateLimiter = Depends(get_rate_limiter),
):
    _ = request
    suggestion = await _with_quota(
        limiter,
        ctx,
        "answer-suggestion",
        lambda: pipeline.generate_answer_suggestion(
            payload.question,
            payload.question_category,
            payload.original_text,
            payload.recommendation,
            payload.section_type,
            payload.language,
            ctx,
        ),
    )
    return AnswerSuggestionResponse(suggestion=suggestion)


@router.post("/ai/direct-enhance", response_model=ImprovementResult)
@rate_limit()
async def direct_enhance(
    request: Request,
    payload: DirectEnhanceRequest,
    ctx: AIRequestContext = Depends(get_request_context),
    pipeline: GenerationPipeline = Depends(get_pipeline),
    limiter: UserRateLimiter = Depends(get_rate_limiter),
):
    _ = request
    ctx = _with_resume(ctx, payload.resume_id)
    return await _with_quota(
        limiter,
        ctx,
        "ai-direct-enhance",
        lambda: pipeline.direct_enhance(
            payload.checklist_item_id, payload.section_type, payload.original_text, payload.language, ctx
        ),
    )
