import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("ANALYTICS_ENABLED", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")

from app.services.errors import StoreUnavailable  # noqa: E402
from app.services.progress_service import get_progress, mark_stage_completed  # noqa: E402
from app.store.sqlite_store import SqliteEngineStore  # noqa: E402


class ProgressTrackerTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SqliteEngineStore(os.path.join(self._tmp.name, "engine.db"))

    def tearDown(self):
        self.store.close()
        self._tmp.cleanup()

    def _add_all_evidence(self, user_id: str, resume_id: str) -> None:
        self.store.insert_scorecard(user_id, resume_id, scores={"skills_score": 80}, total_score=80.0)
        self.store.insert_red_flags(user_id, resume_id, [{"flag_type": "Employment gap", "description": "2019-2021"}])
        self.store.insert_call_simulation(user_id, resume_id, question="Why this role?", answer="Growth.", score=7)

    def test_reconstructs_complete_record_from_evidence(self):
        self._add_all_evidence("u1", "r1")
        self.assertIsNone(self.store.get_progress_record("u1", "r1"))

        progress = get_progress(self.store, "u1", "r1")

        self.assertTrue(progress.scorecard_completed)
        self.assertTrue(progress.red_flags_completed)
        self.assertTrue(progress.behavioral_completed)
        self.assertIsNotNone(progress.completed_at)
        cached = self.store.get_progress_record("u1", "r1")
        self.assertEqual(cached, progress)

    def test_reconstructs_partial_record_without_completion_time(self):
        self.store.insert_scorecard("u1", "r1", scores={}, total_score=50.0)

        progress = get_progress(self.store, "u1", "r1")

        self.assertTrue(progress.scorecard_completed)
        self.assertFalse(progress.red_flags_completed)
        self.assertFalse(progress.behavioral_completed)
        self.assertIsNone(progress.completed_at)

    def test_cached_record_is_returned_verbatim(self):
        self.store.upsert_progress_record("u1", "r1", {"scorecard_completed": True})
        self.store.insert_red_flags("u1", "r1", [{"flag_type": "Job hopping"}])

        progress = get_progress(self.store, "u1", "r1")

        self.assertTrue(progress.scorecard_completed)
        self.assertFalse(progress.red_flags_completed)

    def test_completion_survives_deleted_evidence(self):
        self._add_all_evidence("u1", "r1")
        first = get_progress(self.store, "u1", "r1")

        conn = self.store._connection()
        for table in ("resume_scores", "red_flags", "call_simulations"):
            conn.execute(f"DELETE FROM {table}")

        again = get_progress(self.store, "u1", "r1")
        self.assertTrue(again.all_completed)
        self.assertEqual(again.completed_at, first.completed_at)

    def test_upsert_never_lowers_flags_or_clears_completion(self):
        done = self.store.upsert_progress_record(
            "u1",
            "r1",
            {"scorecard_completed": True, "red_flags_completed": True, "behavioral_completed": True},
        )
        after = self.store.upsert_progress_record(
            "u1",
            "r1",
            {"scorecard_completed": False, "red_flags_completed": False, "behavioral_completed": False},
        )
        self.assertTrue(after.all_completed)
        self.assertEqual(after.completed_at, done.completed_at)

    def test_mark_stage_stamps_completion_on_third_stage(self):
        first = mark_stage_completed(self.store, "u1", "r1", "scorecard")
        self.assertIsNone(first.completed_at)
        second = mark_stage_completed(self.store, "u1", "r1", "behavioral")
        self.assertIsNone(second.completed_at)
        self.assertFalse(second.red_flags_completed)

        third = mark_stage_completed(self.store, "u1", "r1", "red_flags")
        self.assertTrue(third.all_completed)
        self.assertIsNotNone(third.completed_at)

    def test_progress_is_scoped_per_resume(self):
        mark_stage_completed(self.store, "u1", "r1", "scorecard")
        other = get_progress(self.store, "u1", "r2")
        self.assertFalse(other.scorecard_completed)

    def test_store_failure_propagates(self):
        with patch.object(self.store, "get_progress_record", side_effect=StoreUnavailable()):
            with self.assertRaises(StoreUnavailable):
                get_progress(self.store, "u1", "r1")

    def test_unopenable_database_raises_store_unavailable(self):
        broken = SqliteEngineStore(self._tmp.name)
        with self.assertRaises(StoreUnavailable):
            get_progress(broken, "u1", "r1")


if __name__ == "__main__":
    unittest.main()
