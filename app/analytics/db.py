from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from app.core.config import settings

_SELECT_COLUMNS = (
    "id, user_id, resume_id, endpoint, provider, model, prompt_tokens, completion_tokens, "
    "total_tokens, cached_tokens, estimated_cost, is_premium, timestamp, expires_at"
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _get_db_path(db_path: str | None = None) -> Path:
    return Path(db_path or settings.usage_db_path)


def init_db(db_path: str | None = None) -> None:
    if not settings.usage_tracking_enabled:
        return
    path = _get_db_path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS ai_usage_records (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                resume_id TEXT,
                endpoint TEXT NOT NULL,
                provider TEXT NOT NULL,
                model TEXT NOT NULL,
                prompt_tokens INTEGER NOT NULL,
                completion_tokens INTEGER NOT NULL,
                total_tokens INTEGER NOT NULL,
                cached_tokens INTEGER,
                estimated_cost REAL NOT NULL,
                is_premium INTEGER NOT NULL,
                timestamp TEXT NOT NULL,
                expires_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_ai_usage_records_user
            ON ai_usage_records (user_id, timestamp)
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_ai_usage_records_resume
            ON ai_usage_records (resume_id)
            """
        )
        conn.commit()


def insert_usage_record(row: dict[str, Any], db_path: str | None = None) -> None:
    if not settings.usage_tracking_enabled:
        return
    with sqlite3.connect(_get_db_path(db_path)) as conn:
        conn.execute(
            """
            INSERT INTO ai_usage_records (
                id, user_id, resume_id, endpoint, provider, model, prompt_tokens, completion_tokens,
                total_tokens, cached_tokens, estimated_cost, is_premium, timestamp, expires_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                row["id"],
                row["user_id"],
                row.get("resume_id"),
                row["endpoint"],
                row["provider"],
                row["model"],
                row["prompt_tokens"],
                row["completion_tokens"],
                row["total_tokens"],
                row.get("cached_tokens"),
                row["estimated_cost"],
                1 if row["is_premium"] else 0,
                row["timestamp"],
                row["expires_at"],
            ),
        )
        conn.commit()


def purge_old_records(db_path: str | None = None) -> dict[str, int]:
    if not settings.usage_tracking_enabled:
        return {"ai_usage_records": 0}
    with sqlite3.connect(_get_db_path(db_path)) as conn:
        cur = conn.execute("DELETE FROM ai_usage_records WHERE expires_at < ?", (_utc_now(),))
        deleted = int(cur.rowcount or 0)
        conn.commit()
    return {"ai_usage_records": deleted}


def _row_to_dict(cursor: sqlite3.Cursor, row: tuple) -> dict[str, Any]:
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def get_user_usage_logs(user_id: str, limit: int = 100, db_path: str | None = None) -> list[dict[str, Any]]:
    if not settings.usage_tracking_enabled:
        return []
    with sqlite3.connect(_get_db_path(db_path)) as conn:
        cur = conn.execute(
            f"""
            SELECT {_SELECT_COLUMNS}
            FROM ai_usage_records
            WHERE user_id = ?
            ORDER BY timestamp DESC
            LIMIT ?
            """,
            (user_id, limit),
        )
        rows = cur.fetchall()
        return [_row_to_dict(cur, row) for row in rows]


def get_resume_usage_logs(resume_id: str, limit: int = 100, db_path: str | None = None) -> list[dict[str, Any]]:
    if not settings.usage_tracking_enabled:
        return []
    with sqlite3.connect(_get_db_path(db_path)) as conn:
        cur = conn.execute(
            f"""
            SELECT {_SELECT_COLUMNS}
            FROM ai_usage_records
            WHERE resume_id = ?
            ORDER BY timestamp DESC
            LIMIT ?
            """,
            (resume_id, limit),
        )
        rows = cur.fetchall()
        return [_row_to_dict(cur, row) for row in rows]


def get_user_usage_summary(user_id: str, db_path: str | None = None) -> dict[str, Any]:
    if not settings.usage_tracking_enabled:
        return {"enabled": False}
    month = datetime.now(timezone.utc).strftime("%Y-%m")
    with sqlite3.connect(_get_db_path(db_path)) as conn:
        cur = conn.execute(
            """
            SELECT COUNT(*), COALESCE(SUM(prompt_tokens), 0), COALESCE(SUM(completion_tokens), 0),
                   COALESCE(SUM(estimated_cost), 0), MAX(timestamp)
            FROM ai_usage_records
            WHERE user_id = ?
            """,
            (user_id,),
        )
        calls, input_tokens, output_tokens, cost, last_call_at = cur.fetchone()

        cur = conn.execute(
            """
            SELECT COUNT(*), COALESCE(SUM(prompt_tokens), 0), COALESCE(SUM(completion_tokens), 0),
                   COALESCE(SUM(estimated_cost), 0)
            FROM ai_usage_records
            WHERE user_id = ? AND substr(timestamp, 1, 7) = ?
            """,
            (user_id, month),
        )
        month_calls, month_input, month_output, month_cost = cur.fetchone()

        cur = conn.execute(
            """
            SELECT endpoint, COUNT(*) AS calls, COALESCE(SUM(total_tokens), 0) AS tokens,
                   COALESCE(SUM(estimated_cost), 0) AS cost
            FROM ai_usage_records
            WHERE user_id = ?
            GROUP BY endpoint
            ORDER BY calls DESC
            """,
            (user_id,),
        )
        by_endpoint = {
            endpoint: {"calls": endpoint_calls, "totalTokens": tokens, "costUSD": round(endpoint_cost, 8)}
            for endpoint, endpoint_calls, tokens, endpoint_cost in cur.fetchall()
        }

    return {
        "enabled": True,
        "userId": user_id,
        "totalAICalls": calls,
        "totalInputTokens": input_tokens,
        "totalOutputTokens": output_tokens,
        "totalCostUSD": round(cost, 8),
        "lastAICallAt": last_call_at,
        "monthlyStats": {
            "month": month,
            "callCount": month_calls,
            "inputTokens": month_input,
            "outputTokens": month_output,
            "costUSD": round(month_cost, 8),
        },
        "byEndpoint": by_endpoint,
    }
