from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable

from json_repair import repair_json
from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError

from app.ai.types import GenerationTask
from app.core.errors import InvalidProfessionError, ParseError
from app.schemas.generation import (
    AchievementSuggestion,
    EnhancementQuestion,
    GeneratedResume,
    ParsedLinkedInProfile,
    ProfessionSkills,
    ProfessionValidation,
)

logger = logging.getLogger(__name__)

PROFESSION_VALIDATION_FAILED = "Validation failed - please try again"

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?", re.IGNORECASE)
_WRAPPING_QUOTES = (('"', '"'), ("'", "'"), ("“", "”"))

_YEARS_BY_LEVEL = {"entry": "2+", "mid": "5+", "senior": "10+", "executive": "15+"}
_LINKEDIN_ARRAYS = ("experience", "education", "certifications", "projects", "languages", "achievements", "skillsRaw")
_LINKEDIN_STRINGS = (
    "firstName", "lastName", "email", "phone", "country", "linkedin",
    "profession", "summary", "jobDescription",
)
_TARGET_LEVELS = set(_YEARS_BY_LEVEL)
_TONES = {"professional", "creative", "technical", "friendly"}

_achievement_list = TypeAdapter(list[AchievementSuggestion])
_question_list = TypeAdapter(list[EnhancementQuestion])
_string_list = TypeAdapter(list[str])


def strip_code_fences(raw: str) -> str:
    return _FENCE_RE.sub("", raw or "").strip()


def strip_wrapping_quotes(text: str) -> str:
    value = text.strip()
    for opening, closing in _WRAPPING_QUOTES:
        if len(value) >= 2 and value.startswith(opening) and value.endswith(closing):
            return value[1:-1].strip()
    return value


def load_json(raw: str, task: GenerationTask) -> Any:
    """Parse model JSON, allowing exactly one syntactic repair pass."""
    text = strip_code_fences(raw)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        logger.info("json_parse_failed task=%s: %s; attempting repair", task.value, exc)

    try:
        repaired = repair_json(text, return_objects=True)
    except Exception as exc:
        raise ParseError(f"JSON repair failed for {task.value}: {exc}", task=task.value) from exc

    if not isinstance(repaired, (dict, list)):
        raise ParseError(f"Irrecoverable JSON for {task.value}", task=task.value)
    logger.info("json_repair_succeeded task=%s", task.value)
    return repaired


def _validate(adapter_or_model: Any, data: Any, task: GenerationTask) -> Any:
    try:
        if isinstance(adapter_or_model, TypeAdapter):
            return adapter_or_model.validate_python(data)
        return adapter_or_model.model_validate(data)
    except SchemaError as exc:
        raise ParseError(f"Invalid {task.value} structure: {exc.error_count()} schema errors", task=task.value) from exc


def _require_non_empty_list(data: Any, task: GenerationTask) -> list[Any]:
    if not isinstance(data, list):
        raise ParseError(f"{task.value} response is not an array", task=task.value)
    if not data:
        raise ParseError(f"Empty {task.value} array received from AI", task=task.value)
    return data


def _require_object(data: Any, task: GenerationTask) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ParseError(f"{task.value} response is not an object", task=task.value)
    return data


def default_job_description(profile: dict[str, Any]) -> str:
    """Boilerplate built only from fields the model already extracted."""
    profession = profile.get("profession") or "Professional"
    years = _YEARS_BY_LEVEL.get(profile.get("targetLevel") or "mid", "5+")
    top_skills = ", ".join(str(skill) for skill in (profile.get("skillsRaw") or [])[:3])
    skills_text = f" specializing in {top_skills}" if top_skills else ""
    experience = profile.get("experience") or []
    recent_company = ""
    if experience and isinstance(experience[0], dict):
        recent_company = experience[0].get("company") or ""
    company_text = f" with experience at {recent_company}" if recent_company else ""
    return (
        f"{profession} with {years} years of experience{skills_text}{company_text}. "
        "Proven track record in delivering high-quality solutions and technical leadership."
    )


def _normalize_linkedin(data: dict[str, Any]) -> dict[str, Any]:
    profile = dict(data)
    for key in _LINKEDIN_ARRAYS:
        if profile.get(key) is None:
            profile[key] = []
    for key in _LINKEDIN_STRINGS:
        if profile.get(key) is None:
            profile[key] = ""

    tools = profile.pop("toolsRaw", None)
    if isinstance(tools, list) and isinstance(profile["skillsRaw"], list):
        existing = list(profile["skillsRaw"])
        profile["skillsRaw"] = existing + [tool for tool in tools if tool not in existing]

    if profile.get("targetLevel") not in _TARGET_LEVELS:
        profile["targetLevel"] = "mid"
    if profile.get("tone") not in _TONES:
        profile["tone"] = "professional"
    if profile.get("language") not in {"es", "en"}:
        profile["language"] = None

    for item in profile["experience"] if isinstance(profile["experience"], list) else []:
        if isinstance(item, dict):
            for key in ("achievements", "responsibilities"):
                if not isinstance(item.get(key), list):
                    item[key] = []

    if not str(profile.get("jobDescription") or "").strip():
        profile["jobDescription"] = default_job_description(profile)
    return profile


def _parse_resume(raw: str) -> GeneratedResume:
    task = GenerationTask.GENERATE_RESUME
    data = _require_object(load_json(raw, task), task)
    return _validate(GeneratedResume, data, task)


def _parse_linkedin(raw: str) -> ParsedLinkedInProfile:
    task = GenerationTask.PARSE_LINKEDIN_DATA
    data = _require_object(load_json(raw, task), task)
    return _validate(ParsedLinkedInProfile, _normalize_linkedin(data), task)


def _parse_achievements(raw: str) -> list[AchievementSuggestion]:
    task = GenerationTask.GENERATE_ACHIEVEMENTS
    return _validate(_achievement_list, _require_non_empty_list(load_json(raw, task), task), task)


def _string_list_parser(task: GenerationTask) -> Callable[[str], list[str]]:
    def _parse(raw: str) -> list[str]:
        items = _validate(_string_list, _require_non_empty_list(load_json(raw, task), task), task)
        cleaned = [item.strip() for item in items if item.strip()]
        if not cleaned:
            raise ParseError(f"Empty {task.value} array received from AI", task=task.value)
        return cleaned

    return _parse


def _parse_questions(raw: str) -> list[EnhancementQuestion]:
    task = GenerationTask.GENERATE_ENHANCEMENT_QUESTIONS
    data = _require_object(load_json(raw, task), task)
    return _validate(_question_list, _require_non_empty_list(data.get("questions"), task), task)


def _parse_profession_validation(raw: str) -> ProfessionValidation:
    # Fails closed: anything unreadable counts as an invalid profession.
    try:
        data = load_json(raw, GenerationTask.VALIDATE_PROFESSION)
    except ParseError:
        logger.warning("profession_validation_unparseable response_len=%s", len(raw or ""))
        return ProfessionValidation(is_valid=False, message=PROFESSION_VALIDATION_FAILED)
    if not isinstance(data, dict):
        return ProfessionValidation(is_valid=False, message=PROFESSION_VALIDATION_FAILED)
    message = data.get("message")
    return ProfessionValidation(
        is_valid=data.get("isValid") is True,
        message=message if isinstance(message, str) and message else None,
    )


def _parse_profession_skills(raw: str) -> ProfessionSkills:
    task = GenerationTask.GENERATE_PROFESSION_SUGGESTIONS
    data = _require_object(load_json(raw, task), task)
    if data.get("error") == "invalid_profession":
        message = data.get("message")
        if isinstance(message, str) and message.strip():
            raise InvalidProfessionError(message.strip())
        raise InvalidProfessionError()

    merged: dict[str, Any] = {}
    for language in ("es", "en"):
        block = data.get(language)
        if not isinstance(block, dict):
            raise ParseError(f"Missing '{language}' key in {task.value} response", task=task.value)
        skills = block.get("skills") or []
        tools = block.get("tools") or []
        if isinstance(skills, list) and isinstance(tools, list):
            skills = list(skills) + [tool for tool in tools if tool not in skills]
        merged[language] = {"skills": skills}
    return _validate(ProfessionSkills, merged, task)


def _plain_text_parser(task: GenerationTask) -> Callable[[str], str]:
    def _parse(raw: str) -> str:
        text = strip_wrapping_quotes(strip_code_fences(raw))
        if not text:
            raise ParseError(f"Empty {task.value} text received from AI", task=task.value)
        return text

    return _parse


_PARSERS: dict[GenerationTask, Callable[[str], Any]] = {
    GenerationTask.GENERATE_RESUME: _parse_resume,
    GenerationTask.PARSE_LINKEDIN_DATA: _parse_linkedin,
    GenerationTask.GENERATE_ACHIEVEMENTS: _parse_achievements,
    GenerationTask.GENERATE_SUMMARY: _string_list_parser(GenerationTask.GENERATE_SUMMARY),
    GenerationTask.GENERATE_JOB_TITLE_ACHIEVEMENTS: _string_list_parser(GenerationTask.GENERATE_JOB_TITLE_ACHIEVEMENTS),
    GenerationTask.VALIDATE_PROFESSION: _parse_profession_validation,
    GenerationTask.GENERATE_ENHANCEMENT_QUESTIONS: _parse_questions,
    GenerationTask.GENERATE_PROFESSION_SUGGESTIONS: _parse_profession_skills,
    GenerationTask.ENHANCE_TEXT: _plain_text_parser(GenerationTask.ENHANCE_TEXT),
    GenerationTask.IMPROVE_SECTION: _plain_text_parser(GenerationTask.IMPROVE_SECTION),
    GenerationTask.GENERATE_ANSWER_SUGGESTION: _plain_text_parser(GenerationTask.GENERATE_ANSWER_SUGGESTION),
    GenerationTask.DIRECT_ENHANCE: _plain_text_parser(GenerationTask.DIRECT_ENHANCE),
}


def parse_response(task: GenerationTask, raw: str) -> Any:
    parser = _PARSERS.get(task)
    if parser is None:
        raise ValueError(f"No response parser registered for task '{task}'")
    return parser(raw)
