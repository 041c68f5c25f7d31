from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import uuid
from contextlib import contextmanager, suppress
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping, Sequence

from app.core.config import settings
from app.schemas.engine import (
    STAT_FIELDS,
    AssessmentProgress,
    BadgeAwardResult,
    BadgeDefinition,
    UserStats,
)
from app.services.errors import ProfileNotFound, StoreUnavailable, UniquenessViolation

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS user_stats (
        user_id TEXT PRIMARY KEY,
        resumes_screened INTEGER NOT NULL DEFAULT 0,
        red_flags_found INTEGER NOT NULL DEFAULT 0,
        calls_completed INTEGER NOT NULL DEFAULT 0,
        total_points INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS assessment_progress (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        resume_id TEXT NOT NULL,
        scorecard_completed INTEGER NOT NULL DEFAULT 0,
        red_flags_completed INTEGER NOT NULL DEFAULT 0,
        behavioral_completed INTEGER NOT NULL DEFAULT 0,
        completed_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (user_id, resume_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS resume_scores (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        resume_id TEXT NOT NULL,
        scores_json TEXT NOT NULL,
        total_score REAL NOT NULL,
        notes TEXT,
        created_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS red_flags (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        resume_id TEXT NOT NULL,
        flag_type TEXT NOT NULL,
        description TEXT,
        created_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS call_simulations (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        resume_id TEXT NOT NULL,
        question TEXT NOT NULL,
        answer TEXT NOT NULL,
        score INTEGER NOT NULL,
        feedback TEXT,
        created_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS badges (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        icon TEXT NOT NULL DEFAULT '',
        requirement_type TEXT NOT NULL,
        requirement_value INTEGER NOT NULL,
        points INTEGER NOT NULL DEFAULT 0
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS user_badges (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        badge_id TEXT NOT NULL,
        earned_at TEXT NOT NULL,
        UNIQUE (user_id, badge_id)
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_evidence_scores_lookup
    ON resume_scores (user_id, resume_id, created_at);
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_evidence_red_flags_lookup
    ON red_flags (user_id, resume_id);
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_evidence_calls_lookup
    ON call_simulations (user_id, resume_id, created_at);
    """,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _row_to_dict(cursor: sqlite3.Cursor, row: tuple) -> dict[str, Any]:
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


class SqliteEngineStore:
    """sqlite3 implementation of the engine's store protocol.

    One shared connection in autocommit mode; multi-statement writes go through
    ``transaction()``, which issues ``BEGIN IMMEDIATE`` and holds the store lock
    until commit or rollback. The lock is re-entrant so store methods can be
    called from inside a transaction on the same thread.
    """

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._tx_depth = 0

    @property
    def db_path(self) -> str:
        return self._db_path

    def _connection(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is not None:
                return self._conn

            directory = os.path.dirname(self._db_path)
            try:
                if directory:
                    os.makedirs(directory, exist_ok=True)
                conn = sqlite3.connect(
                    self._db_path,
                    check_same_thread=False,
                    timeout=5,
                    isolation_level=None,
                )
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA synchronous=NORMAL;")
                conn.execute("PRAGMA busy_timeout=5000;")
                for statement in _SCHEMA:
                    conn.execute(statement)
            except (OSError, sqlite3.Error) as exc:
                logger.error("engine_store_open_failed path=%s: %s", self._db_path, exc)
                raise StoreUnavailable() from exc
            self._conn = conn
            return self._conn

    @contextmanager
    def _guard(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._connection()
            try:
                yield conn
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as exc:
                logger.warning("engine_store_query_failed path=%s: %s", self._db_path, exc)
                raise StoreUnavailable() from exc

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._guard() as conn:
            if self._tx_depth > 0:
                self._tx_depth += 1
                try:
                    yield
                finally:
                    self._tx_depth -= 1
                return

            conn.execute("BEGIN IMMEDIATE")
            self._tx_depth = 1
            try:
                yield
                conn.execute("COMMIT")
            except BaseException:
                with suppress(sqlite3.Error):
                    conn.execute("ROLLBACK")
                raise
            finally:
                self._tx_depth = 0

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def create_user_stats(self, user_id: str) -> UserStats:
        with self._guard() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO user_stats (user_id, created_at) VALUES (?, ?)",
                (user_id, _utc_now().isoformat()),
            )
        stats = self.get_user_stats(user_id)
        if stats is None:
            raise StoreUnavailable()
        return stats

    def get_user_stats(self, user_id: str) -> UserStats | None:
        with self._guard() as conn:
            cur = conn.execute(
                """
                SELECT user_id, resumes_screened, red_flags_found, calls_completed, total_points
                FROM user_stats
                WHERE user_id = ?
                """,
                (user_id,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return UserStats(**_row_to_dict(cur, row))

    def increment_stats(self, user_id: str, deltas: Mapping[str, int]) -> None:
        clean: dict[str, int] = {}
        for field, delta in deltas.items():
            if field not in STAT_FIELDS:
                raise ValueError(f"Unknown stat field '{field}'.")
            if int(delta) < 0:
                raise ValueError(f"Stat '{field}' can only be incremented.")
            if int(delta) > 0:
                clean[field] = int(delta)

        assignments = ", ".join(f"{field} = {field} + ?" for field in clean)
        with self._guard() as conn:
            if not clean:
                exists = conn.execute("SELECT 1 FROM user_stats WHERE user_id = ?", (user_id,)).fetchone()
                if not exists:
                    raise ProfileNotFound(user_id)
                return
            cur = conn.execute(
                f"UPDATE user_stats SET {assignments} WHERE user_id = ?",
                (*clean.values(), user_id),
            )
            if cur.rowcount == 0:
                raise ProfileNotFound(user_id)

    def list_user_ids_with_points(self) -> list[str]:
        with self._guard() as conn:
            cur = conn.execute("SELECT user_id FROM user_stats WHERE total_points > 0 ORDER BY user_id")
            return [row[0] for row in cur.fetchall()]

    # ------------------------------------------------------------------
    # Assessment progress
    # ------------------------------------------------------------------

    def get_progress_record(self, user_id: str, resume_id: str) -> AssessmentProgress | None:
        with self._guard() as conn:
            row = conn.execute(
                """
                SELECT scorecard_completed, red_flags_completed, behavioral_completed, completed_at
                FROM assessment_progress
                WHERE user_id = ? AND resume_id = ?
                """,
                (user_id, resume_id),
            ).fetchone()
        if not row:
            return None
        return AssessmentProgress(
            scorecard_completed=bool(row[0]),
            red_flags_completed=bool(row[1]),
            behavioral_completed=bool(row[2]),
            completed_at=_parse_ts(row[3]),
        )

    def upsert_progress_record(
        self, user_id: str, resume_id: str, fields: Mapping[str, Any]
    ) -> AssessmentProgress:
        """Merge stage flags into the pair's record.

        Flags only move false -> true. ``completed_at`` is stamped once, when the
        merged record has all three stages, and is never cleared.
        """
        now = _utc_now()
        completed_at = fields.get("completed_at") or now
        if isinstance(completed_at, datetime):
            completed_at = completed_at.isoformat()
        flags = (
            1 if fields.get("scorecard_completed") else 0,
            1 if fields.get("red_flags_completed") else 0,
            1 if fields.get("behavioral_completed") else 0,
        )
        with self.transaction(), self._guard() as conn:
            conn.execute(
                """
                INSERT INTO assessment_progress (
                    user_id, resume_id, scorecard_completed, red_flags_completed,
                    behavioral_completed, completed_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, NULL, ?, ?)
                ON CONFLICT (user_id, resume_id) DO UPDATE SET
                    scorecard_completed = MAX(scorecard_completed, excluded.scorecard_completed),
                    red_flags_completed = MAX(red_flags_completed, excluded.red_flags_completed),
                    behavioral_completed = MAX(behavioral_completed, excluded.behavioral_completed),
                    updated_at = excluded.updated_at
                """,
                (user_id, resume_id, *flags, now.isoformat(), now.isoformat()),
            )
            conn.execute(
                """
                UPDATE assessment_progress
                SET completed_at = ?
                WHERE user_id = ? AND resume_id = ?
                  AND completed_at IS NULL
                  AND scorecard_completed = 1
                  AND red_flags_completed = 1
                  AND behavioral_completed = 1
                """,
                (completed_at, user_id, resume_id),
            )
        record = self.get_progress_record(user_id, resume_id)
        if record is None:
            raise StoreUnavailable()
        return record

    # ------------------------------------------------------------------
    # Stage evidence
    # ------------------------------------------------------------------

    def has_scorecard(self, user_id: str, resume_id: str) -> bool:
        with self._guard() as conn:
            row = conn.execute(
                "SELECT 1 FROM resume_scores WHERE user_id = ? AND resume_id = ? LIMIT 1",
                (user_id, resume_id),
            ).fetchone()
        return row is not None

    def count_red_flags(self, user_id: str, resume_id: str) -> int:
        with self._guard() as conn:
            row = conn.execute(
                "SELECT COUNT(1) FROM red_flags WHERE user_id = ? AND resume_id = ?",
                (user_id, resume_id),
            ).fetchone()
        return int(row[0] or 0)

    def has_call_simulation(self, user_id: str, resume_id: str) -> bool:
        with self._guard() as conn:
            row = conn.execute(
                "SELECT 1 FROM call_simulations WHERE user_id = ? AND resume_id = ? LIMIT 1",
                (user_id, resume_id),
            ).fetchone()
        return row is not None

    def insert_scorecard(
        self,
        user_id: str,
        resume_id: str,
        *,
        scores: Mapping[str, int],
        total_score: float,
        notes: str | None = None,
    ) -> str:
        record_id = uuid.uuid4().hex
        with self._guard() as conn:
            conn.execute(
                """
                INSERT INTO resume_scores (id, user_id, resume_id, scores_json, total_score, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record_id,
                    user_id,
                    resume_id,
                    json.dumps(dict(scores), ensure_ascii=False),
                    float(total_score),
                    notes,
                    _utc_now().isoformat(),
                ),
            )
        return record_id

    def insert_red_flags(self, user_id: str, resume_id: str, flags: Sequence[Mapping[str, str]]) -> int:
        now_iso = _utc_now().isoformat()
        rows = [
            (uuid.uuid4().hex, user_id, resume_id, flag["flag_type"], flag.get("description") or "", now_iso)
            for flag in flags
        ]
        if not rows:
            return 0
        with self.transaction(), self._guard() as conn:
            conn.executemany(
                """
                INSERT INTO red_flags (id, user_id, resume_id, flag_type, description, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)

    def insert_call_simulation(
        self,
        user_id: str,
        resume_id: str,
        *,
        question: str,
        answer: str,
        score: int,
        feedback: str | None = None,
    ) -> str:
        record_id = uuid.uuid4().hex
        with self._guard() as conn:
            conn.execute(
                """
                INSERT INTO call_simulations (id, user_id, resume_id, question, answer, score, feedback, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (record_id, user_id, resume_id, question, answer, int(score), feedback, _utc_now().isoformat()),
            )
        return record_id

    def latest_scorecard(self, user_id: str, resume_id: str) -> dict[str, Any] | None:
        with self._guard() as conn:
            cur = conn.execute(
                """
                SELECT id, scores_json, total_score, notes, created_at
                FROM resume_scores
                WHERE user_id = ? AND resume_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (user_id, resume_id),
            )
            row = cur.fetchone()
            if not row:
                return None
            record = _row_to_dict(cur, row)
        record["scores"] = json.loads(record.pop("scores_json") or "{}")
        return record

    def list_red_flags(self, user_id: str, resume_id: str) -> list[dict[str, Any]]:
        with self._guard() as conn:
            cur = conn.execute(
                """
                SELECT id, flag_type, description, created_at
                FROM red_flags
                WHERE user_id = ? AND resume_id = ?
                ORDER BY created_at, rowid
                """,
                (user_id, resume_id),
            )
            return [_row_to_dict(cur, row) for row in cur.fetchall()]

    def latest_call_simulation(self, user_id: str, resume_id: str) -> dict[str, Any] | None:
        with self._guard() as conn:
            cur = conn.execute(
                """
                SELECT id, question, answer, score, feedback, created_at
                FROM call_simulations
                WHERE user_id = ? AND resume_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (user_id, resume_id),
            )
            row = cur.fetchone()
            return _row_to_dict(cur, row) if row else None

    # ------------------------------------------------------------------
    # Badges
    # ------------------------------------------------------------------

    def seed_badges(self, definitions: Sequence[BadgeDefinition]) -> int:
        inserted = 0
        with self.transaction(), self._guard() as conn:
            for badge in definitions:
                cur = conn.execute(
                    """
                    INSERT OR IGNORE INTO badges (
                        id, name, description, icon, requirement_type, requirement_value, points
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        badge.id,
                        badge.name,
                        badge.description,
                        badge.icon,
                        badge.requirement_type,
                        badge.requirement_value,
                        badge.points,
                    ),
                )
                inserted += int(cur.rowcount or 0)
        return inserted

    def list_badges(self) -> list[BadgeDefinition]:
        with self._guard() as conn:
            cur = conn.execute(
                """
                SELECT id, name, description, icon, requirement_type, requirement_value, points
                FROM badges
                ORDER BY requirement_value ASC, id ASC
                """
            )
            return [BadgeDefinition(**_row_to_dict(cur, row)) for row in cur.fetchall()]

    def list_earned_badge_ids(self, user_id: str) -> set[str]:
        with self._guard() as conn:
            cur = conn.execute("SELECT badge_id FROM user_badges WHERE user_id = ?", (user_id,))
            return {row[0] for row in cur.fetchall()}

    def has_any_badge(self, user_id: str) -> bool:
        with self._guard() as conn:
            row = conn.execute("SELECT 1 FROM user_badges WHERE user_id = ? LIMIT 1", (user_id,)).fetchone()
        return row is not None

    def insert_badge_award(self, user_id: str, badge_id: str) -> None:
        with self._guard() as conn:
            try:
                conn.execute(
                    "INSERT INTO user_badges (user_id, badge_id, earned_at) VALUES (?, ?, ?)",
                    (user_id, badge_id, _utc_now().isoformat()),
                )
            except sqlite3.IntegrityError as exc:
                raise UniquenessViolation(user_id, badge_id) from exc

    def insert_badge_awards(self, user_id: str, badge_ids: Sequence[str]) -> BadgeAwardResult:
        """Insert award rows in one transaction, reporting duplicates per row."""
        result = BadgeAwardResult()
        if not badge_ids:
            return result
        with self.transaction():
            for badge_id in badge_ids:
                try:
                    self.insert_badge_award(user_id, badge_id)
                except UniquenessViolation:
                    result.duplicates.append(badge_id)
                else:
                    result.inserted.append(badge_id)
        return result


_store: SqliteEngineStore | None = None
_store_lock = threading.Lock()


def get_store() -> SqliteEngineStore:
    global _store
    with _store_lock:
        if _store is None:
            _store = SqliteEngineStore(settings.engine_db_path)
        return _store
