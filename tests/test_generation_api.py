import dataclasses
import sys
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fastapi.testclient import TestClient  # noqa: E402

from app.ai.types import TokenUsage  # noqa: E402
from app.analytics import db as usage_db  # noqa: E402
from app.analytics.usage import AIUsageRecord  # noqa: E402
from app.api.v1 import generation  # noqa: E402
from app.core import security  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.core.errors import InvalidProfessionError, ParseError, ValidationError  # noqa: E402
from app.core.kv_store import SqliteKeyValueStore  # noqa: E402
from app.core.rate_limit import limiter  # noqa: E402
from app.core.user_rate_limit import RATE_LIMIT_NAMESPACE, UserRateLimiter  # noqa: E402
from app.main import app  # noqa: E402
from app.schemas.generation import (  # noqa: E402
    ImprovementResult,
    ProfessionSkills,
    ProfessionValidation,
    SkillList,
)

FREE_HEADERS = {"X-User-Id": "user-1"}
PREMIUM_HEADERS = {"X-User-Id": "user-1", "X-User-Premium": "true"}
IMPROVE_PAYLOAD = {
    "sectionType": "summary",
    "originalText": "Backend developer building payment APIs",
    "userInstructions": "Make it more concise",
    "language": "en",
}


def _test_limits():
    limits = dict((name, (free, premium)) for name, free, premium in settings.endpoint_limits)
    limits["improve-section"] = (2, 5)
    limits["validate-profession"] = (1, 1)
    return tuple((name, free, premium) for name, (free, premium) in limits.items())


class GenerationApiTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = SqliteKeyValueStore(str(Path(self.tmp.name) / "kv.db"))
        self.usage_db_path = str(Path(self.tmp.name) / "usage.db")
        usage_db.init_db(self.usage_db_path)

        test_settings = dataclasses.replace(
            settings, api_key=None, endpoint_limits=_test_limits(), usage_db_path=self.usage_db_path
        )
        for module in (generation, security, usage_db):
            patcher = patch.object(module, "settings", test_settings)
            patcher.start()
            self.addCleanup(patcher.stop)

        self.pipeline = SimpleNamespace(
            improve_section=AsyncMock(return_value=ImprovementResult(text="Builds payment APIs", improved=True)),
            validate_profession=AsyncMock(return_value=ProfessionValidation(is_valid=True)),
            generate_profession_suggestions=AsyncMock(
                return_value=ProfessionSkills(es=SkillList(skills=["Gestión"]), en=SkillList(skills=["Management"]))
            ),
            generate_job_title_achievements=AsyncMock(return_value=["A", "B", "C", "D", "E"]),
            generate_summary=AsyncMock(return_value=["Experienced accountant."]),
        )
        app.dependency_overrides[generation.get_pipeline] = lambda: self.pipeline
        app.dependency_overrides[generation.get_store] = lambda: self.store
        limiter.reset()
        self.client = TestClient(app, raise_server_exceptions=False)

    def tearDown(self):
        app.dependency_overrides.clear()
        self.store.close()
        self.tmp.cleanup()

    def _count(self, endpoint: str, user_id: str = "user-1") -> int:
        entry = self.store.get(RATE_LIMIT_NAMESPACE, UserRateLimiter.window_key(user_id, endpoint))
        return int(entry["count"]) if entry else 0

    def _improve(self, headers=FREE_HEADERS):
        return self.client.post("/v1/ai/improve-section", json=IMPROVE_PAYLOAD, headers=headers)

    def test_improve_section_success(self):
        response = self._improve()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"text": "Builds payment APIs", "improved": True, "reason": None})
        args = self.pipeline.improve_section.await_args.args
        self.assertEqual(args[:4], ("summary", IMPROVE_PAYLOAD["originalText"], "Make it more concise", "en"))
        self.assertEqual(args[4].user_id, "user-1")
        self.assertFalse(args[4].is_premium)

    def test_free_limit_returns_429_with_reset_time(self):
        for _ in range(2):
            self.assertEqual(self._improve().status_code, 200)
        response = self._improve()
        self.assertEqual(response.status_code, 429)
        detail = response.json()["detail"]
        self.assertEqual(detail["code"], "RATE_LIMITED")
        self.assertIsInstance(detail["resetTime"], int)
        self.assertEqual(self.pipeline.improve_section.await_count, 2)

    def test_premium_callers_get_the_premium_limit(self):
        statuses = [self._improve(PREMIUM_HEADERS).status_code for _ in range(5)]
        self.assertEqual(statuses, [200] * 5)
        self.assertEqual(self._improve(PREMIUM_HEADERS).status_code, 429)

    def test_system_failure_refunds_the_slot(self):
        self.pipeline.improve_section.side_effect = ParseError("bad json", task="improveSection")
        for _ in range(3):
            response = self._improve()
            self.assertEqual(response.status_code, 502)
            self.assertEqual(response.json()["detail"]["code"], "PARSE_ERROR")
        self.assertEqual(self._count("improve-section"), 0)

    def test_semantic_rejection_keeps_the_slot(self):
        self.pipeline.improve_section.side_effect = ValidationError("Invalid section type 'hobbies'")
        response = self._improve()
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"]["code"], "VALIDATION_ERROR")
        self.assertEqual(self._count("improve-section"), 1)

    def test_unexpected_errors_refund_the_slot(self):
        self.pipeline.improve_section.side_effect = RuntimeError("bug")
        self.assertEqual(self._improve().status_code, 500)
        self.assertEqual(self._count("improve-section"), 0)

    def test_invalid_profession_maps_to_422(self):
        self.pipeline.generate_profession_suggestions.side_effect = InvalidProfessionError()
        response = self.client.post(
            "/v1/ai/profession-suggestions", json={"profession": "asdfgh"}, headers=FREE_HEADERS
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"]["code"], "INVALID_PROFESSION")
        self.assertEqual(self._count("profession-suggestions"), 1)

    def test_missing_user_identity_is_401(self):
        response = self.client.post("/v1/ai/improve-section", json=IMPROVE_PAYLOAD)
        self.assertEqual(response.status_code, 401)
        self.pipeline.improve_section.assert_not_awaited()

    def test_api_key_is_enforced_when_configured(self):
        keyed = dataclasses.replace(security.settings, api_key="secret")
        with patch.object(security, "settings", keyed):
            denied = self.client.post("/v1/ai/improve-section", json=IMPROVE_PAYLOAD, headers=FREE_HEADERS)
            allowed = self.client.post(
                "/v1/ai/improve-section", json=IMPROVE_PAYLOAD, headers={**FREE_HEADERS, "X-API-Key": "secret"}
            )
        self.assertEqual(denied.status_code, 401)
        self.assertEqual(allowed.status_code, 200)

    def test_cached_profession_validation_skips_quota(self):
        first = self.client.post("/v1/ai/validate-profession", json={"profession": "Chef"}, headers=FREE_HEADERS)
        second = self.client.post("/v1/ai/validate-profession", json={"profession": " chef "}, headers=FREE_HEADERS)
        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.json()["isValid"], True)
        self.assertEqual(self.pipeline.validate_profession.await_count, 1)
        self.assertEqual(self._count("validate-profession"), 1)

    def test_experience_achievements_are_sampled_from_cache(self):
        payload = {"jobTitle": "Accountant", "language": "en"}
        first = self.client.post("/v1/ai/experience-achievements", json=payload, headers=FREE_HEADERS)
        second = self.client.post("/v1/ai/experience-achievements", json=payload, headers=FREE_HEADERS)
        self.assertEqual(len(first.json()["achievements"]), 3)
        self.assertTrue(set(second.json()["achievements"]) <= {"A", "B", "C", "D", "E"})
        self.assertEqual(self.pipeline.generate_job_title_achievements.await_count, 1)

    def test_profession_suggestions_in_requested_language(self):
        response = self.client.post(
            "/v1/ai/profession-suggestions", json={"profession": "Manager", "language": "en"}, headers=FREE_HEADERS
        )
        self.assertEqual(response.json(), {"skills": ["Management"]})

    def test_summary_suggestions_response_shape(self):
        response = self.client.post(
            "/v1/ai/summary-suggestions",
            json={"profession": "Accountant", "achievements": ["Closed books"], "summaryType": "differentiators"},
            headers=FREE_HEADERS,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"summaries": ["Experienced accountant."]})

    def test_health(self):
        response = self.client.get("/v1/health")
        self.assertEqual(response.json(), {"status": "healthy"})


class AnalyticsApiTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = str(Path(self.tmp.name) / "usage.db")
        usage_db.init_db(self.db_path)
        test_settings = dataclasses.replace(settings, api_key=None, usage_db_path=self.db_path)
        for module in (security, usage_db):
            patcher = patch.object(module, "settings", test_settings)
            patcher.start()
            self.addCleanup(patcher.stop)
        limiter.reset()
        self.client = TestClient(app)

        record = AIUsageRecord.create(
            user_id="user-1",
            endpoint="generateResume",
            provider="groq",
            model="openai/gpt-oss-20b",
            usage=TokenUsage(prompt_tokens=120, completion_tokens=80, total_tokens=200),
            is_premium=False,
            resume_id="resume-9",
        )
        usage_db.insert_usage_record(record.to_row(), self.db_path)

    def tearDown(self):
        self.tmp.cleanup()

    def test_usage_summary(self):
        body = self.client.get("/v1/analytics/ai-usage/user-1").json()
        self.assertEqual(body["totalAICalls"], 1)
        self.assertEqual(body["byEndpoint"]["generateResume"]["calls"], 1)

    def test_user_and_resume_logs(self):
        user_logs = self.client.get("/v1/analytics/ai-usage/user-1/logs", params={"limit": 5}).json()
        self.assertEqual(user_logs["userId"], "user-1")
        self.assertEqual(len(user_logs["logs"]), 1)

        resume_logs = self.client.get("/v1/analytics/ai-usage/resume/resume-9/logs").json()
        self.assertEqual(resume_logs["resumeId"], "resume-9")
        self.assertEqual(resume_logs["logs"][0]["endpoint"], "generateResume")

    def test_log_limit_is_bounded(self):
        response = self.client.get("/v1/analytics/ai-usage/user-1/logs", params={"limit": 0})
        self.assertEqual(response.status_code, 422)


if __name__ == "__main__":
    unittest.main()
