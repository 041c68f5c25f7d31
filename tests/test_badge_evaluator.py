import os
import sys
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("ANALYTICS_ENABLED", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")

from app.schemas.engine import BadgeDefinition  # noqa: E402
from app.services.badge_service import (  # noqa: E402
    backfill_user_badges,
    evaluate_and_award,
    evaluate_badges_safely,
    get_badge_recommendations,
    user_has_badges,
)
from app.services.errors import PartialWriteFailure, ProfileNotFound  # noqa: E402
from app.store.sqlite_store import SqliteEngineStore  # noqa: E402


def _badge(badge_id: str, requirement_type: str, requirement_value: int, points: int) -> BadgeDefinition:
    return BadgeDefinition(
        id=badge_id,
        name=badge_id.replace("-", " ").title(),
        requirement_type=requirement_type,
        requirement_value=requirement_value,
        points=points,
    )


class BadgeEvaluatorTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SqliteEngineStore(os.path.join(self._tmp.name, "engine.db"))
        self.store.create_user_stats("u1")

    def tearDown(self):
        self.store.close()
        self._tmp.cleanup()

    def _points(self, user_id: str = "u1") -> int:
        return self.store.get_user_stats(user_id).total_points

    def test_first_screen_awards_badge_and_exact_bonus(self):
        self.store.seed_badges([_badge("first-screen", "resumes_screened", 1, 10)])
        self.store.increment_stats("u1", {"resumes_screened": 1})
        before = self._points()

        results = evaluate_and_award(self.store, "u1")

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].badge_id, "first-screen")
        self.assertTrue(results[0].earned_now)
        self.assertEqual(results[0].progress_percent, 100.0)
        self.assertEqual(self._points() - before, 10)

    def test_second_call_is_idempotent(self):
        self.store.seed_badges(
            [_badge("first-screen", "resumes_screened", 1, 10), _badge("flag-spotter", "red_flags_found", 3, 20)]
        )
        self.store.increment_stats("u1", {"resumes_screened": 2, "red_flags_found": 1})

        first = evaluate_and_award(self.store, "u1")
        points_after_first = self._points()
        second = evaluate_and_award(self.store, "u1")

        self.assertEqual({r.badge_id for r in first if r.earned}, {r.badge_id for r in second if r.earned})
        self.assertFalse(any(r.earned_now for r in second))
        self.assertEqual(self._points(), points_after_first)
        self.assertEqual(self.store.list_earned_badge_ids("u1"), {"first-screen"})

    def test_progress_percent_for_unearned_badges(self):
        self.store.seed_badges([_badge("steady", "calls_completed", 10, 50)])
        self.store.increment_stats("u1", {"calls_completed": 3})

        (result,) = evaluate_and_award(self.store, "u1")

        self.assertFalse(result.earned)
        self.assertFalse(result.earned_now)
        self.assertAlmostEqual(result.progress_percent, 30.0)
        self.assertEqual(result.current_value, 3)
        self.assertEqual(result.requirement_value, 10)

    def test_results_follow_ascending_threshold_order(self):
        self.store.seed_badges(
            [
                _badge("big", "resumes_screened", 50, 100),
                _badge("small", "resumes_screened", 1, 5),
                _badge("mid", "red_flags_found", 10, 20),
            ]
        )
        results = evaluate_and_award(self.store, "u1")
        self.assertEqual([r.badge_id for r in results], ["small", "mid", "big"])

    def test_missing_profile_raises(self):
        self.store.seed_badges([_badge("first-screen", "resumes_screened", 1, 10)])
        with self.assertRaises(ProfileNotFound):
            evaluate_and_award(self.store, "ghost")

    def test_best_effort_wrapper_swallows_failures(self):
        self.assertEqual(evaluate_badges_safely(self.store, "ghost"), [])

    def test_earned_set_never_shrinks(self):
        self.store.seed_badges(
            [
                _badge("one", "resumes_screened", 1, 1),
                _badge("five", "resumes_screened", 5, 1),
                _badge("ten", "resumes_screened", 10, 1),
            ]
        )
        earned: set[str] = set()
        for _ in range(10):
            self.store.increment_stats("u1", {"resumes_screened": 1})
            evaluate_and_award(self.store, "u1")
            current = self.store.list_earned_badge_ids("u1")
            self.assertTrue(earned <= current)
            earned = current
        self.assertEqual(earned, {"one", "five", "ten"})

    def test_points_badges_cascade_within_one_call(self):
        self.store.seed_badges(
            [_badge("first-screen", "resumes_screened", 1, 10), _badge("collector", "total_points", 10, 5)]
        )
        self.store.increment_stats("u1", {"resumes_screened": 1})

        results = evaluate_and_award(self.store, "u1")

        self.assertTrue(all(r.earned_now for r in results))
        self.assertEqual(self._points(), 15)
        second = evaluate_and_award(self.store, "u1")
        self.assertFalse(any(r.earned_now for r in second))
        self.assertEqual(self._points(), 15)

    def test_stale_snapshot_does_not_double_credit(self):
        self.store.seed_badges([_badge("first-screen", "resumes_screened", 1, 10)])
        self.store.increment_stats("u1", {"resumes_screened": 1})

        with patch.object(self.store, "list_earned_badge_ids", return_value=set()):
            first = evaluate_and_award(self.store, "u1")
            second = evaluate_and_award(self.store, "u1")

        self.assertTrue(first[0].earned_now)
        self.assertFalse(second[0].earned_now)
        self.assertTrue(second[0].earned)
        self.assertEqual(self._points(), 10)
        self.assertEqual(self.store.list_earned_badge_ids("u1"), {"first-screen"})

    def test_concurrent_evaluations_award_once(self):
        self.store.seed_badges([_badge("first-screen", "resumes_screened", 1, 10)])
        self.store.increment_stats("u1", {"resumes_screened": 1})

        original = self.store.list_earned_badge_ids
        barrier = threading.Barrier(2, timeout=5)
        counter_lock = threading.Lock()
        calls = {"n": 0}

        def snapshot_then_wait(user_id):
            earned = original(user_id)
            with counter_lock:
                calls["n"] += 1
                first_round = calls["n"] <= 2
            if first_round:
                barrier.wait()
            return earned

        results: list = []
        errors: list = []

        def worker():
            try:
                results.append(evaluate_and_award(self.store, "u1"))
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        with patch.object(self.store, "list_earned_badge_ids", side_effect=snapshot_then_wait):
            threads = [threading.Thread(target=worker) for _ in range(2)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=10)

        self.assertEqual(errors, [])
        self.assertEqual(len(results), 2)
        winners = [r for r in results if r[0].earned_now]
        self.assertEqual(len(winners), 1)
        self.assertEqual(self.store.list_earned_badge_ids("u1"), {"first-screen"})
        self.assertEqual(self._points(), 10)

    def test_failed_point_credit_rolls_back_awards(self):
        self.store.seed_badges([_badge("first-screen", "resumes_screened", 1, 10)])
        self.store.increment_stats("u1", {"resumes_screened": 1})

        with patch.object(self.store, "increment_stats", side_effect=ProfileNotFound("u1")):
            with self.assertRaises(PartialWriteFailure):
                evaluate_and_award(self.store, "u1")

        self.assertEqual(self.store.list_earned_badge_ids("u1"), set())
        self.assertEqual(self._points(), 0)
        results = evaluate_and_award(self.store, "u1")
        self.assertTrue(results[0].earned_now)
        self.assertEqual(self._points(), 10)


class BadgeRecommendationTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SqliteEngineStore(os.path.join(self._tmp.name, "engine.db"))
        self.store.create_user_stats("u1")

    def tearDown(self):
        self.store.close()
        self._tmp.cleanup()

    def test_next_badges_describe_remaining_work(self):
        self.store.seed_badges(
            [
                BadgeDefinition(id="a", name="Rookie", requirement_type="resumes_screened", requirement_value=3),
                BadgeDefinition(id="b", name="Spotter", requirement_type="red_flags_found", requirement_value=1),
                BadgeDefinition(id="c", name="Caller", requirement_type="calls_completed", requirement_value=5),
                BadgeDefinition(id="d", name="Later", requirement_type="total_points", requirement_value=900),
            ]
        )
        self.store.increment_stats("u1", {"resumes_screened": 1})

        recommendations = get_badge_recommendations(self.store, "u1")

        self.assertEqual(
            recommendations,
            [
                'Find 1 more red flag to earn "Spotter"',
                'Screen 2 more resumes to earn "Rookie"',
                'Complete 5 more screening calls to earn "Caller"',
            ],
        )

    def test_missing_profile_gets_generic_prompt(self):
        self.assertEqual(
            get_badge_recommendations(self.store, "ghost"),
            ["Complete more assessments to unlock recommendations!"],
        )

    def test_all_badges_earned_gets_encouragement(self):
        self.store.seed_badges([BadgeDefinition(id="a", name="Rookie", requirement_type="resumes_screened", requirement_value=1)])
        self.store.increment_stats("u1", {"resumes_screened": 1})
        evaluate_and_award(self.store, "u1")

        recommendations = get_badge_recommendations(self.store, "u1")

        self.assertTrue(user_has_badges(self.store, "u1"))
        self.assertEqual(recommendations[0], "Great progress! Continue screening to unlock more achievements.")


class BadgeBackfillTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SqliteEngineStore(os.path.join(self._tmp.name, "engine.db"))
        self.store.seed_badges([_badge("first-screen", "resumes_screened", 1, 10)])

    def tearDown(self):
        self.store.close()
        self._tmp.cleanup()

    def test_backfill_awards_users_with_points_only(self):
        for user_id in ("a", "b", "c"):
            self.store.create_user_stats(user_id)
        self.store.increment_stats("a", {"resumes_screened": 1, "total_points": 40})
        self.store.increment_stats("b", {"total_points": 5})
        self.store.increment_stats("c", {"resumes_screened": 1})

        report = backfill_user_badges(self.store, batch_size=1, delay_s=0)

        self.assertEqual(report.users_processed, 2)
        self.assertEqual(report.users_failed, 0)
        self.assertEqual(report.badges_awarded, 1)
        self.assertEqual(self.store.list_earned_badge_ids("a"), {"first-screen"})
        self.assertEqual(self.store.list_earned_badge_ids("c"), set())

    def test_backfill_continues_after_a_failure(self):
        for user_id in ("a", "b"):
            self.store.create_user_stats(user_id)
            self.store.increment_stats(user_id, {"resumes_screened": 1, "total_points": 1})

        original = self.store.get_user_stats

        def flaky(user_id):
            if user_id == "a":
                raise ProfileNotFound(user_id)
            return original(user_id)

        with patch.object(self.store, "get_user_stats", side_effect=flaky):
            report = backfill_user_badges(self.store, batch_size=10, delay_s=0)

        self.assertEqual(report.users_failed, 1)
        self.assertEqual(report.users_processed, 1)
        self.assertEqual(self.store.list_earned_badge_ids("b"), {"first-screen"})


if __name__ == "__main__":
    unittest.main()
