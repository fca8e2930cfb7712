from fastapi import APIRouter, Depends, Header, Query

from app.core.security import check_api_key
from app.analytics import db as usage_db

router = APIRouter()


def _auth(x_api_key: str | None = Header(default=None, alias="X-API-Key")):
    check_api_key(x_api_key, None)


@router.get("/analytics/ai-usage/{user_id}")
def ai_usage_summary(user_id: str, _: None = Depends(_auth)):
    return usage_db.get_user_usage_summary(user_id)


@router.get("/analytics/ai-usage/{user_id}/logs")
def ai_usage_logs(
    user_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    _: None = Depends(_auth),
):
    return {"userId": user_id, "logs": usage_db.get_user_usage_logs(user_id, limit=limit)}


@router.get("/analytics/ai-usage/resume/{resume_id}/logs")
def resume_usage_logs(
    resume_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    _: None = Depends(_auth),
):
    return {"resumeId": resume_id, "logs": usage_db.get_resume_usage_logs(resume_id, limit=limit)}
