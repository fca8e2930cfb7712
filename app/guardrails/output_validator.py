from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 2000
GENERAL_MAX_GROWTH = 10
MECHANICAL_MAX_GROWTH = 5
MIN_LENGTH_RATIO = 0.1
MIN_KEYWORD_OVERLAP = 0.2
MIN_KEYWORDS_FOR_OVERLAP = 5

_OUTPUT_INJECTION_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"ignore\s+previous\s+instructions",
        r"ignore\s+all\s+previous",
        r"disregard\s+(your\s+)?instructions",
        r"override\s+(your\s+)?instructions",
        r"system\s*:",
        r"assistant\s*:",
        r"user\s*:",
        r"\binstructions?\s*:",
        r"<\|.*?\|>",
        r"\[/?INST\]",
        r"<</?SYS>>",
        r"\[/?SYSTEM\]",
        r"```(system|instruction|prompt)",
        r"\bDAN\s+mode",
        r"do\s+anything\s+now",
        r"jailbreak\s+(successful|enabled|activated)",
        r"my\s+(system\s+)?instructions\s+are",
        r"here\s+are\s+my\s+instructions",
        r"my\s+prompt\s+is",
        r"i\s+was\s+instructed\s+to",
    )
)

_SCRIPT_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"<script",
        r"javascript:",
        r"onerror=",
        r"onload=",
        r"eval\(",
        r"function\s*\(",
        r"alert\(",
        r"document\.",
        r"window\.",
        r"console\.",
        r"setTimeout",
        r"setInterval",
        r"XMLHttpRequest",
        r"fetch\(",
    )
)

# Word boundaries keep "skills" or "Sussex" from matching.
_INAPPROPRIATE_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(fuck|shit|damn)\b",
        r"\b(murder|death)\b",
        r"\b(porn|nude)\b",
        r"\b(cocaine|heroin)\b",
        r"\b(terrorist|bomb)\b",
    )
)

_METRIC_TOKEN_RE = re.compile(r"\d+(?:[.,]\d+)*")


@dataclass(frozen=True)
class OutputValidation:
    is_valid: bool
    reason: str | None = None


_VALID = OutputValidation(is_valid=True)


def detect_output_injection(output: Any) -> OutputValidation:
    if not isinstance(output, str) or not output:
        return _VALID
    for pattern in _OUTPUT_INJECTION_PATTERNS:
        if pattern.search(output):
            logger.warning("output_injection_detected pattern=%s", pattern.pattern)
            return OutputValidation(is_valid=False, reason="Output contains injection attempts or system markers")
    return _VALID


def _security_checks(improved: str) -> OutputValidation:
    for pattern in _SCRIPT_PATTERNS:
        if pattern.search(improved):
            return OutputValidation(is_valid=False, reason="Improved text contains potentially dangerous code")
    for pattern in _INAPPROPRIATE_PATTERNS:
        if pattern.search(improved):
            return OutputValidation(is_valid=False, reason="Improved text contains inappropriate content")
    return detect_output_injection(improved)


def _keywords(text: str) -> list[str]:
    return [word for word in text.lower().split() if len(word) > 3]


def _keyword_overlap(improved: str, original: str) -> tuple[float, int]:
    original_words = _keywords(original)
    if not original_words:
        return 1.0, 0
    improved_words = set(_keywords(improved))
    common = [word for word in original_words if word in improved_words]
    return len(common) / len(original_words), len(original_words)


def _length_checks(improved: str, original: str, max_growth: int) -> OutputValidation | None:
    if not improved.strip():
        return OutputValidation(is_valid=False, reason="Improved text cannot be empty")
    if len(improved) > MAX_OUTPUT_CHARS:
        return OutputValidation(is_valid=False, reason=f"Improved text exceeds {MAX_OUTPUT_CHARS} characters")
    if len(improved) > len(original) * max_growth:
        return OutputValidation(is_valid=False, reason="Improved text is too long")
    if len(improved.strip()) < len(original.strip()) * MIN_LENGTH_RATIO:
        return OutputValidation(is_valid=False, reason="Improved text is too short")
    return None


def validate_improved_text(
    improved: Any,
    original: Any,
    section_type: str,
    *,
    allow_substantial_rewrite: bool = False,
) -> OutputValidation:
    """Bounds check for free-form rewrites; callers fall back to ``original`` when invalid."""
    if not isinstance(improved, str) or not improved:
        return OutputValidation(is_valid=False, reason="Improved text is required")
    if not isinstance(original, str) or not original:
        return OutputValidation(is_valid=False, reason="Original text is required")

    failure = _length_checks(improved, original, GENERAL_MAX_GROWTH)
    if failure is not None:
        return failure

    security = _security_checks(improved)
    if not security.is_valid:
        return security

    if improved.strip() == original.strip():
        return _VALID

    if not allow_substantial_rewrite:
        overlap, keyword_count = _keyword_overlap(improved, original)
        if overlap < MIN_KEYWORD_OVERLAP and keyword_count > MIN_KEYWORDS_FOR_OVERLAP:
            logger.info(
                "output_rejected_low_overlap section=%s overlap=%.2f keywords=%s",
                section_type,
                overlap,
                keyword_count,
            )
            return OutputValidation(is_valid=False, reason="Improved text seems too different from original")

    return _VALID


def validate_mechanical_enhancement(improved: Any, original: Any) -> OutputValidation:
    """Less strict variant for pronoun removal, verb swaps and regrouping.

    The keyword overlap check is skipped because those fixes legitimately change
    word structure. Every security check still applies.
    """
    if not isinstance(improved, str) or not improved:
        return OutputValidation(is_valid=False, reason="Improved text is required")
    if not isinstance(original, str) or not original:
        return OutputValidation(is_valid=False, reason="Original text is required")

    failure = _length_checks(improved, original, MECHANICAL_MAX_GROWTH)
    if failure is not None:
        return failure
    return _security_checks(improved)


def metric_tokens(text: str) -> set[str]:
    return set(_METRIC_TOKEN_RE.findall(text or ""))


def find_unsupported_metrics(output: str, sources: Iterable[str]) -> list[str]:
    """Numeric tokens present in ``output`` that none of ``sources`` contain."""
    known: set[str] = set()
    for source in sources:
        known |= metric_tokens(source)
    return sorted(metric_tokens(output) - known)
