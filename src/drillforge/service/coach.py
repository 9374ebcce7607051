"""Request layer: fetches user state, runs the engine, writes results back.

The engine itself is pure; everything that touches the store, the catalog
or the clock lives here. Callers must serialize requests for the same user.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from drillforge.catalog.registry import CatalogRegistry
from drillforge.config.settings import Settings
from drillforge.engine.assignment import RandomSource, assign, clamp
from drillforge.engine.errors import InvalidInput
from drillforge.engine.history import days_since, recent_success_rate
from drillforge.engine.models import (
    AssignResult,
    Drill,
    DrillAttempt,
    Outcome,
    SessionOutcome,
    UserCategoryState,
)
from drillforge.engine.progression import (
    complete_session,
    drill_xp_award,
    update_confidence,
)
from drillforge.state.store import SessionRecord, UserStateStore

EventSink = Callable[[str, dict], None]


class Coach:
    """Assign drills and record session outcomes for any number of users."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[UserStateStore] = None,
        catalog: Optional[CatalogRegistry] = None,
        rng: Optional[RandomSource] = None,
        on_event: Optional[EventSink] = None,
    ):
        self.settings = settings or Settings.load()
        self.store = store or UserStateStore(db_path=self.settings.data_dir / "state.db")
        self.catalog = catalog or CatalogRegistry(self.settings.catalog_path)
        self.rng = rng
        self._emit = on_event or (lambda name, payload: None)

    # -- helpers --

    def _history(self, user_id: str, category: str) -> list[DrillAttempt]:
        window = self.settings.assignment.struggle.history_window
        return self.store.recent_attempts(user_id, limit=window, category=category)

    def _stored_confidence(
        self, user_id: str, category: str, skill_level: Optional[str] = None,
        has_attempts: bool = True,
    ) -> float:
        stored = self.store.get_confidence(user_id, category)
        seed = self.settings.session.skill_seeds.get(skill_level) if skill_level else None
        if seed is not None and not has_attempts:
            stored = seed
        elif stored is None:
            stored = self.settings.session.initial_confidence.get(
                category, self.settings.progression.confidence.default
            )
        else:
            return stored
        self.store.save_confidence(user_id, category, stored)
        return stored

    def _inactive_days(self, history: list[DrillAttempt], now: datetime) -> Optional[float]:
        if not history:
            return None
        return days_since(history[-1].timestamp_iso, now)

    def _in_recovery(self, history: list[DrillAttempt], now: datetime) -> bool:
        inactive = self._inactive_days(history, now)
        return inactive is not None and inactive >= self.settings.session.recovery_inactivity_days

    def _require_drill(self, drill_id: str) -> Drill:
        drill = self.catalog.get_drill(drill_id)
        if drill is None:
            raise ValueError(f"Unknown drill: {drill_id}")
        return drill

    # -- operations --

    def category_state(
        self, user_id: str, category: str, skill_level: Optional[str] = None
    ) -> UserCategoryState:
        """Stored category state with the success rate derived from history."""
        history = self._history(user_id, category)
        lookback = self.settings.assignment.struggle.lookback_attempts
        return UserCategoryState(
            category=category,
            confidence=self._stored_confidence(
                user_id, category, skill_level, has_attempts=bool(history)
            ),
            last_practiced_iso=history[-1].timestamp_iso if history else None,
            recent_success_rate=recent_success_rate(history, category, lookback),
        )

    def assign(
        self,
        user_id: str,
        category: str,
        difficulty: Optional[str] = None,
        skill_level: Optional[str] = None,
        now: Optional[datetime] = None,
        goal: Optional[str] = None,
    ) -> AssignResult:
        now = now or datetime.now(timezone.utc)
        history = self._history(user_id, category)
        state = self.category_state(user_id, category, skill_level)

        session_cfg = self.settings.session
        bias = session_cfg.difficulty_bias.get(difficulty, 0.0) if difficulty else 0.0
        if goal:
            bias += session_cfg.goal_bias.get(goal, 0.0)
        if self._in_recovery(history, now):
            bias += session_cfg.recovery_confidence_bias
        state.confidence = clamp(state.confidence + bias, 0.0, 1.0)

        queue = self.store.get_reinforcement_queue(user_id, category)
        result = assign(
            state,
            self.catalog.list_drills(),
            history,
            params=self.settings.assignment,
            rng=self.rng,
            now=now,
            reinforcement_queue=queue,
        )

        if result.meta.is_reinforcement and result.drill.id not in queue:
            window = self.settings.assignment.struggle.repeat_sessions_window
            queue = (queue + [result.drill.id])[:window]
            self.store.save_reinforcement_queue(user_id, category, queue)

        self._emit("drill_assigned", {
            "userId": user_id,
            "category": category,
            "drillId": result.drill.id,
            "confidenceBefore": result.meta.confidence_before,
            "dTarget": result.meta.d_target,
            "isReinforcement": result.meta.is_reinforcement,
            "reason": result.meta.reason,
        })
        return result

    def start_session(
        self,
        user_id: str,
        category: str,
        suggested_duration: int,
        difficulty: str = "medium",
        skill_level: Optional[str] = None,
        now: Optional[datetime] = None,
        goal: Optional[str] = None,
    ) -> dict:
        if suggested_duration <= 0:
            raise InvalidInput(f"suggestedDuration must be positive, got {suggested_duration}")
        now = now or datetime.now(timezone.utc)
        history = self._history(user_id, category)
        recovery = self._in_recovery(history, now)

        result = self.assign(user_id, category, difficulty, skill_level, now, goal=goal)
        duration = suggested_duration
        if recovery:
            duration = min(suggested_duration, self.settings.session.recovery_duration_minutes)
        drill = replace(result.drill, content=result.drill.content.with_updates(durationMinutes=duration))

        session_id = f"session_{uuid.uuid4().hex[:8]}"
        self.store.create_session(SessionRecord(
            session_id=session_id,
            user_id=user_id,
            category=category,
            started_at=now.isoformat(),
            assigned_drill_id=drill.id,
            reinforcement=result.meta.is_reinforcement,
        ))

        reasons = []
        if recovery:
            reasons.append("eased back in after a short break")
        if skill_level:
            reasons.append(f"matched to your {skill_level} level")
        if goal:
            reasons.append(f"aligned with your {goal.replace('-', ' ')} goal")
        reasons.append(f"focused on {drill.category}")
        message = f"Chosen because it {' and '.join(reasons)}."

        self._emit("session_start", {
            "userId": user_id,
            "sessionId": session_id,
            "category": category,
            "suggestedDuration": duration,
            "requestedDuration": suggested_duration,
            "recoveryMode": recovery,
            "assignedDrillId": drill.id,
        })
        return {
            "sessionId": session_id,
            "assignedDrill": drill.to_dict(),
            "assignedMeta": result.meta.to_dict(),
            "assignmentExplanation": {
                "showWhy": len(history) < 5 or len(history) % 5 == 0,
                "message": message,
            },
        }

    def _log_attempt(self, user_id: str, drill: Drill, outcome: Outcome, now: datetime) -> None:
        self.store.append_attempt(user_id, DrillAttempt(
            drill_id=drill.id,
            category=drill.category,
            outcome=outcome,
            timestamp_iso=now.isoformat(),
            difficulty_score=drill.difficulty_score,
            tags=drill.tags,
        ))
        if outcome == Outcome.SUCCESS:
            queue = self.store.get_reinforcement_queue(user_id, drill.category)
            if drill.id in queue:
                self.store.save_reinforcement_queue(
                    user_id, drill.category, [d for d in queue if d != drill.id]
                )

    def record_drill_result(
        self,
        user_id: str,
        drill_id: str,
        outcome: Outcome,
        confidence_after: Optional[float] = None,
        reinforcement: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """Log one drill attempt and update category confidence.

        ``reinforcement`` defaults to whether the drill sits in the user's
        reinforcement queue. Returns the new confidence and the XP the
        result is worth; XP totals only change on session completion.
        """
        outcome = Outcome.parse(outcome)
        if confidence_after is not None and (
            isinstance(confidence_after, bool)
            or not isinstance(confidence_after, (int, float))
            or not 0.0 <= confidence_after <= 1.0
        ):
            raise InvalidInput(f"confidenceAfter must be in [0, 1], got {confidence_after!r}")
        now = now or datetime.now(timezone.utc)
        drill = self._require_drill(drill_id)

        if reinforcement is None:
            reinforcement = drill.id in self.store.get_reinforcement_queue(user_id, drill.category)
        current = self._stored_confidence(user_id, drill.category)
        if confidence_after is not None:
            updated = confidence_after
        else:
            updated = update_confidence(
                current, outcome, self.settings.progression.confidence, reinforcement
            )
        self.store.save_confidence(user_id, drill.category, updated)
        self._log_attempt(user_id, drill, outcome, now)
        xp_awarded = drill_xp_award(outcome, reinforcement, self.settings.progression.xp_award)

        self._emit("drill_result", {
            "userId": user_id,
            "drillId": drill.id,
            "category": drill.category,
            "outcome": outcome.value,
            "updatedConfidence": updated,
            "xpAwarded": xp_awarded,
            "reinforcement": reinforcement,
        })
        return {
            "updatedConfidence": updated,
            "xpAwarded": xp_awarded,
            "reinforcement": reinforcement,
        }

    def complete_session(
        self,
        session_id: str,
        outcome: SessionOutcome,
        now: Optional[datetime] = None,
        use_freeze: bool = False,
    ) -> dict:
        session = self.store.get_session(session_id)
        if session is None:
            raise ValueError(f"Unknown session: {session_id}")
        if session.completed:
            raise ValueError(f"Session already completed: {session_id}")
        now = now or datetime.now(timezone.utc)
        user_id = session.user_id

        outcome = replace(outcome, drill_id=outcome.drill_id or session.assigned_drill_id)
        outcome.validate()
        drill = self._require_drill(outcome.drill_id) if outcome.drill_outcome else None
        category = drill.category if drill else session.category

        state = UserCategoryState(
            category=category,
            confidence=self._stored_confidence(user_id, category),
        )
        reinforcement = drill is not None and drill.id in self.store.get_reinforcement_queue(user_id, category)
        result = complete_session(
            self.store.get_streak(user_id),
            self.store.get_xp(user_id),
            state,
            outcome,
            params=self.settings.progression,
            now=now,
            reinforcement=reinforcement,
            use_freeze=use_freeze,
        )

        self.store.save_xp(user_id, result.xp_state)
        self.store.save_streak(user_id, result.streak_state)
        self.store.save_confidence(user_id, category, result.updated_category_confidence)
        if drill is not None:
            self._log_attempt(user_id, drill, outcome.drill_outcome, now)
        result.badges_earned = self.store.add_badges(user_id, result.badges_earned)
        self.store.mark_session_completed(session_id)

        self._emit("xp_awarded", {
            "userId": user_id, "xpAwarded": result.xp_awarded, "totalXp": result.xp_state.xp,
        })
        if result.streak_event in ("extended", "frozen", "broken"):
            self._emit(f"streak_{result.streak_event}", {
                "userId": user_id, "streak": result.streak_state.current,
            })
        for badge in result.badges_earned:
            self._emit("badge_earned", {"userId": user_id, "badge": badge})
        self._emit("session_complete", {
            "userId": user_id,
            "sessionId": session_id,
            "completed": outcome.completed,
            "durationMinutes": outcome.duration_minutes,
            "xpAwarded": result.xp_awarded,
            "drillId": outcome.drill_id,
            "drillOutcome": outcome.drill_outcome.value if outcome.drill_outcome else None,
            "streak": result.streak_state.current,
        })
        return result.to_dict()

    def progress(self, user_id: str) -> dict:
        return {
            "xpState": self.store.get_xp(user_id).to_dict(),
            "streakState": self.store.get_streak(user_id).to_dict(),
            "confidence": self.store.get_all_confidence(user_id),
            "badges": self.store.get_badges(user_id),
        }
