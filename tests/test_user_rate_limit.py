import sqlite3
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.kv_store import SqliteKeyValueStore  # noqa: E402
from app.core.user_rate_limit import RATE_LIMIT_NAMESPACE, UserRateLimiter  # noqa: E402

WINDOW_MS = 60_000


class FakeClock:
    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


class UserRateLimiterTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = SqliteKeyValueStore(str(Path(self.tmp.name) / "kv.db"))
        self.clock = FakeClock()
        self.limiter = UserRateLimiter(self.store, clock=self.clock)

    def tearDown(self):
        self.store.close()
        self.tmp.cleanup()

    def _count(self, user_id="user-1", endpoint="improve-section") -> int:
        entry = self.store.get(RATE_LIMIT_NAMESPACE, UserRateLimiter.window_key(user_id, endpoint))
        return int(entry["count"]) if entry else 0

    def test_first_request_opens_window(self):
        decision = self.limiter.check_rate_limit("user-1", "improve-section", 3, WINDOW_MS)
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.remaining, 2)
        self.assertEqual(decision.reset_time, self.clock.now + WINDOW_MS)
        self.assertEqual(self._count(), 1)

    def test_requests_beyond_max_are_denied_until_window_rolls(self):
        for _ in range(2):
            self.assertTrue(self.limiter.check_rate_limit("user-1", "improve-section", 2, WINDOW_MS).allowed)
        denied = self.limiter.check_rate_limit("user-1", "improve-section", 2, WINDOW_MS)
        self.assertFalse(denied.allowed)
        self.assertEqual(denied.remaining, 0)
        self.assertEqual(self._count(), 2)

        self.clock.now += WINDOW_MS + 1
        self.assertTrue(self.limiter.check_rate_limit("user-1", "improve-section", 2, WINDOW_MS).allowed)
        self.assertEqual(self._count(), 1)

    def test_windows_are_per_user_and_endpoint(self):
        self.limiter.check_rate_limit("user-1", "improve-section", 1, WINDOW_MS)
        self.assertTrue(self.limiter.check_rate_limit("user-2", "improve-section", 1, WINDOW_MS).allowed)
        self.assertTrue(self.limiter.check_rate_limit("user-1", "generate-resume", 1, WINDOW_MS).allowed)

    def test_missing_identity_is_denied(self):
        self.assertFalse(self.limiter.check_rate_limit("", "improve-section", 5, WINDOW_MS).allowed)
        self.assertFalse(self.limiter.check_rate_limit("user-1", "", 5, WINDOW_MS).allowed)

    def test_check_then_refund_conserves_count(self):
        self.limiter.check_rate_limit("user-1", "improve-section", 5, WINDOW_MS)
        before = self._count()
        self.limiter.check_rate_limit("user-1", "improve-section", 5, WINDOW_MS)
        self.limiter.refund_rate_limit("user-1", "improve-section")
        self.assertEqual(self._count(), before)

    def test_refund_never_goes_negative(self):
        self.limiter.check_rate_limit("user-1", "improve-section", 5, WINDOW_MS)
        self.limiter.refund_rate_limit("user-1", "improve-section")
        self.limiter.refund_rate_limit("user-1", "improve-section")
        self.assertEqual(self._count(), 0)

    def test_refund_without_window_is_a_no_op(self):
        self.limiter.refund_rate_limit("user-9", "improve-section")
        self.assertIsNone(self.store.get(RATE_LIMIT_NAMESPACE, UserRateLimiter.window_key("user-9", "improve-section")))

    def test_reservation_refunds_once(self):
        reservation = self.limiter.reserve("user-1", "improve-section", 5, WINDOW_MS)
        self.assertTrue(reservation.allowed)
        reservation.refund()
        reservation.refund()
        self.assertTrue(reservation.refunded)
        self.assertEqual(self._count(), 0)

    def test_denied_reservation_does_not_refund(self):
        self.limiter.reserve("user-1", "improve-section", 1, WINDOW_MS)
        denied = self.limiter.reserve("user-1", "improve-section", 1, WINDOW_MS)
        self.assertFalse(denied.allowed)
        denied.refund()
        self.assertEqual(self._count(), 1)

    def test_second_call_in_window_with_max_one_is_denied(self):
        first = self.limiter.check_rate_limit("u", "ep", 1, WINDOW_MS)
        second = self.limiter.check_rate_limit("u", "ep", 1, WINDOW_MS)
        self.assertEqual((first.allowed, first.remaining), (True, 0))
        self.assertFalse(second.allowed)

    def test_refund_after_exhausted_window_frees_one_slot(self):
        for _ in range(3):
            self.assertTrue(self.limiter.check_rate_limit("user-1", "improve-section", 3, WINDOW_MS).allowed)
        self.limiter.refund_rate_limit("user-1", "improve-section")
        self.assertEqual(self._count(), 2)
        self.assertTrue(self.limiter.check_rate_limit("user-1", "improve-section", 3, WINDOW_MS).allowed)
        self.assertFalse(self.limiter.check_rate_limit("user-1", "improve-section", 3, WINDOW_MS).allowed)

    def test_store_errors_fail_open(self):
        with patch.object(self.store, "update", side_effect=sqlite3.OperationalError("locked")):
            decision = self.limiter.check_rate_limit("user-1", "improve-section", 3, WINDOW_MS)
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.remaining, 3)


class KeyValueStoreTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = SqliteKeyValueStore(str(Path(self.tmp.name) / "nested" / "kv.db"))

    def tearDown(self):
        self.store.close()
        self.tmp.cleanup()

    def test_put_get_merge_and_delete(self):
        self.store.put("ns", "k", {"a": 1})
        self.assertEqual(self.store.merge("ns", "k", {"b": 2}), {"a": 1, "b": 2})
        self.assertEqual(self.store.get("ns", "k"), {"a": 1, "b": 2})
        self.assertIsNone(self.store.get("other", "k"))
        self.store.delete("ns", "k")
        self.assertIsNone(self.store.get("ns", "k"))

    def test_increment_respects_floor(self):
        self.assertEqual(self.store.increment("ns", "counter", "count"), 1)
        self.assertEqual(self.store.increment("ns", "counter", "count", -5, floor=0), 0)

    def test_failed_mutator_rolls_back(self):
        self.store.put("ns", "k", {"a": 1})

        def _boom(current):
            raise ValueError("bad mutation")

        with self.assertRaises(ValueError):
            self.store.update("ns", "k", _boom)
        self.assertEqual(self.store.get("ns", "k"), {"a": 1})


if __name__ == "__main__":
    unittest.main()
