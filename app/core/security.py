from __future__ import annotations

import secrets

from fastapi import HTTPException, status

from app.ai.types import AIRequestContext
from app.core.config import settings

_TRUE_VALUES = {"1", "true", "yes", "on"}

_MESSAGES = {
    "invalid_api_key": {
        "es": "Se requiere una clave API válida para usar las funciones de IA.",
        "en": "A valid API key is required to use the AI features.",
    },
    "missing_user": {
        "es": "Falta la identidad del usuario.",
        "en": "Missing user identity.",
    },
}


def _normalize_lang(lang: str | None) -> str:
    if not lang:
        return "es"
    return lang.split(",")[0].strip().lower()[:2]


def _unauthorized(code: str, lang: str | None) -> HTTPException:
    messages = _MESSAGES[code]
    message = messages.get(_normalize_lang(lang), messages["es"])
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": code.upper(), "message": message},
    )


def check_api_key(x_api_key: str | None, lang: str | None = None) -> None:
    expected = settings.api_key
    if not expected:
        return
    if not x_api_key or not secrets.compare_digest(x_api_key, expected):
        raise _unauthorized("invalid_api_key", lang)


def resolve_caller(
    x_api_key: str | None,
    x_user_id: str | None,
    x_user_premium: str | None,
    lang: str | None = None,
) -> AIRequestContext:
    """Caller identity as forwarded by the upstream authorizer."""
    check_api_key(x_api_key, lang)
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise _unauthorized("missing_user", lang)
    is_premium = (x_user_premium or "").strip().lower() in _TRUE_VALUES
    return AIRequestContext(user_id=user_id, is_premium=is_premium)
