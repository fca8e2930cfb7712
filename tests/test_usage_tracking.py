import dataclasses
import sys
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.ai.types import TokenUsage  # noqa: E402
from app.analytics import db as usage_db  # noqa: E402
from app.analytics.usage import AIUsageRecord, UsageTracker, calculate_cost  # noqa: E402
from app.core.config import settings  # noqa: E402

USAGE = TokenUsage(prompt_tokens=1_000_000, completion_tokens=1_000_000, total_tokens=2_000_000)


class CostTests(unittest.TestCase):
    def test_known_models(self):
        self.assertAlmostEqual(calculate_cost("openai", "gpt-4o", USAGE), 12.5)
        self.assertAlmostEqual(calculate_cost("openai", "gpt-4o-mini-2024-07-18", USAGE), 0.75)
        self.assertAlmostEqual(calculate_cost("groq", "openai/gpt-oss-20b", USAGE), 0.375)

    def test_unknown_model_uses_cheapest_entry(self):
        self.assertAlmostEqual(calculate_cost("anthropic", "claude-next", USAGE), 1.5)

    def test_unknown_provider_costs_nothing(self):
        self.assertEqual(calculate_cost("mystery", "x", USAGE), 0.0)


class UsageRecordTests(unittest.TestCase):
    def test_create_sets_identity_cost_and_expiry(self):
        record = AIUsageRecord.create(
            user_id="user-1",
            endpoint="improveSection",
            provider="openai",
            model="gpt-4o",
            usage=TokenUsage(prompt_tokens=100, completion_tokens=50, total_tokens=150),
            is_premium=True,
            resume_id="resume-1",
            retention_days=30,
        )
        self.assertTrue(record.id.startswith("ailog_"))
        self.assertGreater(record.estimated_cost, 0)
        created = datetime.fromisoformat(record.timestamp)
        expires = datetime.fromisoformat(record.expires_at)
        self.assertEqual((expires - created).days, 30)
        row = record.to_row()
        self.assertEqual(row["total_tokens"], 150)
        self.assertEqual(row["resume_id"], "resume-1")


class TrackerWithoutLoopTests(unittest.TestCase):
    def test_track_without_event_loop_is_skipped(self):
        with tempfile.TemporaryDirectory() as tmp:
            db_path = str(Path(tmp) / "usage.db")
            usage_db.init_db(db_path)
            record = AIUsageRecord.create(
                user_id="user-1",
                endpoint="improveSection",
                provider="groq",
                model="openai/gpt-oss-20b",
                usage=TokenUsage(),
                is_premium=False,
            )
            tracker = UsageTracker(db_path)
            tracker.track(record)
            self.assertEqual(tracker.pending, 0)
            self.assertEqual(usage_db.get_user_usage_logs("user-1", db_path=db_path), [])


class UsageDbTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = str(Path(self.tmp.name) / "usage.db")
        usage_db.init_db(self.db_path)

    def tearDown(self):
        self.tmp.cleanup()

    def _record(self, endpoint="improveSection", **overrides) -> AIUsageRecord:
        record = AIUsageRecord.create(
            user_id="user-1",
            endpoint=endpoint,
            provider="groq",
            model="openai/gpt-oss-20b",
            usage=TokenUsage(prompt_tokens=200, completion_tokens=100, total_tokens=300),
            is_premium=False,
        )
        return dataclasses.replace(record, **overrides)

    async def test_tracker_writes_in_background(self):
        tracker = UsageTracker(self.db_path)
        tracker.track(self._record())
        tracker.track(self._record(endpoint="generateSummary"))
        await tracker.drain()
        self.assertEqual(tracker.pending, 0)

        logs = usage_db.get_user_usage_logs("user-1", db_path=self.db_path)
        self.assertEqual(len(logs), 2)
        self.assertEqual({log["endpoint"] for log in logs}, {"improveSection", "generateSummary"})

    async def test_tracker_failures_never_reach_the_caller(self):
        tracker = UsageTracker(self.db_path)
        with patch.object(usage_db, "insert_usage_record", side_effect=RuntimeError("disk full")):
            with self.assertLogs("app.analytics.usage", level="WARNING"):
                tracker.track(self._record())
                await tracker.drain()

    def test_summary_and_purge(self):
        usage_db.insert_usage_record(self._record().to_row(), self.db_path)
        usage_db.insert_usage_record(self._record(endpoint="generateResume").to_row(), self.db_path)
        expired_at = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        usage_db.insert_usage_record(self._record(expires_at=expired_at).to_row(), self.db_path)

        summary = usage_db.get_user_usage_summary("user-1", db_path=self.db_path)
        self.assertTrue(summary["enabled"])
        self.assertEqual(summary["totalAICalls"], 3)
        self.assertEqual(summary["totalInputTokens"], 600)
        self.assertEqual(summary["monthlyStats"]["callCount"], 3)
        self.assertEqual(summary["byEndpoint"]["improveSection"]["calls"], 2)

        self.assertEqual(usage_db.purge_old_records(self.db_path), {"ai_usage_records": 1})
        self.assertEqual(usage_db.get_user_usage_summary("user-1", db_path=self.db_path)["totalAICalls"], 2)

    def test_resume_logs(self):
        usage_db.insert_usage_record(self._record(resume_id="resume-7").to_row(), self.db_path)
        logs = usage_db.get_resume_usage_logs("resume-7", db_path=self.db_path)
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0]["is_premium"], 0)

    def test_disabled_tracking_reports_disabled(self):
        disabled = dataclasses.replace(settings, usage_tracking_enabled=False)
        with patch.object(usage_db, "settings", disabled):
            self.assertEqual(usage_db.get_user_usage_summary("user-1", db_path=self.db_path), {"enabled": False})
            self.assertEqual(usage_db.get_user_usage_logs("user-1", db_path=self.db_path), [])


if __name__ == "__main__":
    unittest.main()
