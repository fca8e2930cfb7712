from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from app.ai.types import CompletionOptions, GenerationTask
from app.guardrails.input_sanitizer import SECURITY_PREAMBLE

NOT_PROVIDED = "not provided"

LANGUAGE_NAMES = {"es": "Spanish", "en": "English"}

NO_FABRICATION_RULES = (
    "- DO NOT invent, infer, or create any data not explicitly provided by the user\n"
    "- DO NOT add percentages, metrics, numbers, or quantitative data unless the user provided them\n"
    "- DO NOT create fake achievements, results, or impact statements\n"
    "- Use qualitative language to describe impact (e.g., \"significantly improved\", \"streamlined\") "
    "without specific numbers"
)

PLAIN_TEXT_CONTRACT = (
    "Respond ONLY with the resulting text. No explanations, no markdown, no surrounding quotes."
)


@dataclass(frozen=True)
class PromptSpec:
    task: GenerationTask
    prompt: str
    options: CompletionOptions = field(default_factory=CompletionOptions)


def language_name(language: str | None) -> str:
    return LANGUAGE_NAMES.get(language or "", LANGUAGE_NAMES["es"])


def or_not_provided(value: str | None) -> str:
    text = (value or "").strip()
    return text if text else NOT_PROVIDED


def bullet_list(items: Iterable[str], empty: str = NOT_PROVIDED) -> str:
    lines = [f"- {item.strip()}" for item in items if item and item.strip()]
    return "\n".join(lines) if lines else f"- {empty}"


def wrap(tag: str, value: str | None) -> str:
    """Fence user-controlled content inside a named data block."""
    return f"<{tag}>\n{or_not_provided(value)}\n</{tag}>"


def with_preamble(body: str) -> str:
    return f"{SECURITY_PREAMBLE.strip()}\n\n{body.strip()}"


def title_case(value: str) -> str:
    return value[:1].upper() + value[1:]
