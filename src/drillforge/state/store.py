"""SQLite-backed per-user state for DrillForge."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from drillforge.engine.models import DrillAttempt, Outcome, StreakState, XPState


@dataclass
class SessionRecord:
    session_id: str
    user_id: str
    category: str
    started_at: str
    assigned_drill_id: Optional[str]
    reinforcement: bool
    completed: bool = False


class UserStateStore:
    """Key-value style storage keyed by user (and category where relevant).

    The attempts table is append-only; reads return the most recent window.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path or (Path.home() / ".drillforge" / "state.db")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_state (
                    user_id TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, key)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS category_state (
                    user_id TEXT NOT NULL,
                    category TEXT NOT NULL,
                    confidence REAL NOT NULL,
                    reinforcement_queue TEXT DEFAULT '[]',
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, category)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS attempts (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    drill_id TEXT NOT NULL,
                    category TEXT NOT NULL,
                    outcome TEXT NOT NULL,
                    timestamp_iso TEXT NOT NULL,
                    difficulty_score INTEGER DEFAULT 0,
                    tags TEXT DEFAULT '[]'
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    category TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    assigned_drill_id TEXT,
                    reinforcement INTEGER DEFAULT 0,
                    completed INTEGER DEFAULT 0
                )
            """)

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    # -- opaque per-user values --

    def _get_value(self, user_id: str, key: str) -> Optional[dict]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT value FROM user_state WHERE user_id = ? AND key = ?",
                (user_id, key),
            ).fetchone()
        return json.loads(row[0]) if row else None

    def _set_value(self, user_id: str, key: str, value: dict) -> None:
        now = datetime.now().isoformat()
        with self._conn() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO user_state (user_id, key, value, updated_at)
                   VALUES (?, ?, ?, ?)""",
                (user_id, key, json.dumps(value), now),
            )

    def get_xp(self, user_id: str) -> XPState:
        data = self._get_value(user_id, "xp")
        return XPState.from_dict(data) if data else XPState()

    def save_xp(self, user_id: str, xp: XPState) -> None:
        self._set_value(user_id, "xp", xp.to_dict())

    def get_streak(self, user_id: str) -> StreakState:
        data = self._get_value(user_id, "streak")
        return StreakState.from_dict(data) if data else StreakState()

    def save_streak(self, user_id: str, streak: StreakState) -> None:
        self._set_value(user_id, "streak", streak.to_dict())

    def get_badges(self, user_id: str) -> list[str]:
        data = self._get_value(user_id, "badges")
        return list(data.get("awarded", [])) if data else []

    def add_badges(self, user_id: str, badges: list[str]) -> list[str]:
        """Record badges; return only the ones not awarded before."""
        awarded = self.get_badges(user_id)
        new = [b for b in badges if b not in awarded]
        if new:
            self._set_value(user_id, "badges", {"awarded": awarded + new})
        return new

    # -- per-category state --

    def get_confidence(self, user_id: str, category: str) -> Optional[float]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT confidence FROM category_state WHERE user_id = ? AND category = ?",
                (user_id, category),
            ).fetchone()
        return row[0] if row else None

    def save_confidence(self, user_id: str, category: str, confidence: float) -> None:
        now = datetime.now().isoformat()
        with self._conn() as conn:
            conn.execute(
                """INSERT INTO category_state (user_id, category, confidence, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT (user_id, category)
                   DO UPDATE SET confidence = excluded.confidence, updated_at = excluded.updated_at""",
                (user_id, category, confidence, now),
            )

    def get_all_confidence(self, user_id: str) -> dict[str, float]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT category, confidence FROM category_state WHERE user_id = ? ORDER BY category",
                (user_id,),
            ).fetchall()
        return {category: confidence for category, confidence in rows}

    def get_reinforcement_queue(self, user_id: str, category: str) -> list[str]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT reinforcement_queue FROM category_state WHERE user_id = ? AND category = ?",
                (user_id, category),
            ).fetchone()
        return json.loads(row[0]) if row and row[0] else []

    def save_reinforcement_queue(self, user_id: str, category: str, queue: list[str]) -> None:
        # The category row always exists once a confidence has been seeded.
        with self._conn() as conn:
            conn.execute(
                "UPDATE category_state SET reinforcement_queue = ? WHERE user_id = ? AND category = ?",
                (json.dumps(queue), user_id, category),
            )

    # -- attempt history --

    def append_attempt(self, user_id: str, attempt: DrillAttempt) -> None:
        with self._conn() as conn:
            conn.execute(
                """INSERT INTO attempts
                   (user_id, drill_id, category, outcome, timestamp_iso, difficulty_score, tags)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    user_id, attempt.drill_id, attempt.category, attempt.outcome.value,
                    attempt.timestamp_iso, attempt.difficulty_score, json.dumps(sorted(attempt.tags)),
                ),
            )

    def recent_attempts(
        self, user_id: str, limit: int = 20, category: Optional[str] = None
    ) -> list[DrillAttempt]:
        """Most recent ``limit`` attempts, returned oldest first."""
        query = "SELECT drill_id, category, outcome, timestamp_iso, difficulty_score, tags FROM attempts WHERE user_id = ?"
        args: list = [user_id]
        if category is not None:
            query += " AND category = ?"
            args.append(category)
        query += " ORDER BY seq DESC LIMIT ?"
        args.append(limit)
        with self._conn() as conn:
            rows = conn.execute(query, args).fetchall()
        return [
            DrillAttempt(
                drill_id=r[0], category=r[1], outcome=Outcome(r[2]),
                timestamp_iso=r[3], difficulty_score=r[4], tags=frozenset(json.loads(r[5])),
            )
            for r in reversed(rows)
        ]

    # -- sessions --

    def create_session(self, record: SessionRecord) -> None:
        with self._conn() as conn:
            conn.execute(
                """INSERT INTO sessions
                   (session_id, user_id, category, started_at, assigned_drill_id, reinforcement, completed)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.session_id, record.user_id, record.category, record.started_at,
                    record.assigned_drill_id, int(record.reinforcement), int(record.completed),
                ),
            )

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
        if not row:
            return None
        return SessionRecord(
            session_id=row[0],
            user_id=row[1],
            category=row[2],
            started_at=row[3],
            assigned_drill_id=row[4],
            reinforcement=bool(row[5]),
            completed=bool(row[6]),
        )

    def mark_session_completed(self, session_id: str) -> None:
        with self._conn() as conn:
            conn.execute(
                "UPDATE sessions SET completed = 1 WHERE session_id = ?", (session_id,)
            )

    def reset_user(self, user_id: str) -> None:
        with self._conn() as conn:
            for table in ("user_state", "category_state", "attempts", "sessions"):
                conn.execute(f"DELETE FROM {table} WHERE user_id = ?", (user_id,))
