"""Plain data shapes shared by the assignment engine and progression updater.

Types that cross the JSON boundary carry ``to_dict``/``from_dict`` using the
camelCase field names of that boundary, so the request layer never has to
know about Python attribute names.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from drillforge.engine.errors import InvalidInput


class Outcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAIL = "fail"

    @classmethod
    def parse(cls, value: Any) -> "Outcome":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidInput(f"Unknown drill outcome: {value!r}") from None


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise InvalidInput(f"Invalid ISO timestamp: {value!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def iso_date(value: Optional[str]) -> Optional[date]:
    parsed = parse_iso(value)
    return parsed.date() if parsed else None


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _parse_tags(drill_id: Any, raw: Any) -> frozenset[str]:
    """Tags may be a single string or a list of strings."""
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        return frozenset([raw])
    if isinstance(raw, (list, tuple, set, frozenset)) and all(isinstance(t, str) for t in raw):
        return frozenset(raw)
    raise InvalidInput(f"Drill {drill_id!r} tags must be a string or a list of strings, got {raw!r}")


@dataclass(frozen=True)
class DrillContent:
    """Presentation payload carried through untouched by the engine."""
    data: dict = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def with_updates(self, **updates: Any) -> "DrillContent":
        return DrillContent(data={**self.data, **updates})


@dataclass(frozen=True)
class Drill:
    id: str
    title: str
    category: str
    difficulty_score: int  # 0..100
    content: DrillContent = field(default_factory=DrillContent)
    tags: frozenset[str] = frozenset()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "difficultyScore": self.difficulty_score,
            "content": dict(self.content.data),
            "tags": sorted(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Drill":
        try:
            drill_id = data["id"]
            category = data["category"]
        except KeyError as e:
            raise InvalidInput(f"Drill is missing required field {e.args[0]!r}") from None
        score = data.get("difficultyScore", data.get("difficulty_score"))
        if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100:
            raise InvalidInput(
                f"Drill {drill_id!r} difficultyScore must be an integer in [0, 100], got {score!r}"
            )
        return cls(
            id=str(drill_id),
            title=data.get("title", str(drill_id)),
            category=str(category),
            difficulty_score=score,
            content=DrillContent(data=dict(data.get("content") or {})),
            tags=_parse_tags(drill_id, data.get("tags")),
        )


@dataclass(frozen=True)
class DrillAttempt:
    drill_id: str
    category: str
    outcome: Outcome
    timestamp_iso: str
    difficulty_score: int = 0
    tags: frozenset[str] = frozenset()


@dataclass
class UserCategoryState:
    category: str
    confidence: float  # 0..1
    last_practiced_iso: Optional[str] = None
    recent_success_rate: Optional[float] = None  # 0..1 over the lookback window

    def validate(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise InvalidInput(f"Confidence must be in [0, 1], got {self.confidence}")
        rate = self.recent_success_rate
        if rate is not None and not 0.0 <= rate <= 1.0:
            raise InvalidInput(f"recentSuccessRate must be in [0, 1], got {rate}")


@dataclass(frozen=True)
class AssignWindow:
    low: int
    high: int


@dataclass(frozen=True)
class AssignMeta:
    confidence_before: float
    d_target: int
    window: AssignWindow
    is_reinforcement: bool
    reason: str

    def to_dict(self) -> dict:
        return {
            "confidenceBefore": self.confidence_before,
            "dTarget": self.d_target,
            "window": {"low": self.window.low, "high": self.window.high},
            "isReinforcement": self.is_reinforcement,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class AssignResult:
    drill: Drill
    meta: AssignMeta

    def to_dict(self) -> dict:
        return {"drill": self.drill.to_dict(), "meta": self.meta.to_dict()}


@dataclass
class StreakState:
    current: int = 0
    longest: int = 0
    last_active_iso: Optional[str] = None
    freeze_tokens: int = 0

    def to_dict(self) -> dict:
        return {
            "current": self.current,
            "longest": self.longest,
            "lastActiveISO": self.last_active_iso,
            "freezeTokens": self.freeze_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StreakState":
        return cls(
            current=data.get("current", 0),
            longest=data.get("longest", 0),
            last_active_iso=data.get("lastActiveISO"),
            freeze_tokens=data.get("freezeTokens", 0),
        )


@dataclass
class XPState:
    xp: int = 0
    level: int = 1
    xp_to_next_level: int = 250

    def to_dict(self) -> dict:
        return {"xp": self.xp, "level": self.level, "xpToNextLevel": self.xp_to_next_level}

    @classmethod
    def from_dict(cls, data: dict) -> "XPState":
        return cls(
            xp=data.get("xp", 0),
            level=data.get("level", 1),
            xp_to_next_level=data.get("xpToNextLevel", 250),
        )


@dataclass
class SessionOutcome:
    duration_minutes: float
    xp_earned: int
    completed: bool
    drill_id: Optional[str] = None
    drill_outcome: Optional[Outcome] = None
    confidence_after: Optional[float] = None

    def validate(self) -> None:
        if not _is_number(self.duration_minutes) or self.duration_minutes <= 0:
            raise InvalidInput(
                f"durationMinutes must be a positive number, got {self.duration_minutes!r}"
            )
        xp = self.xp_earned
        if isinstance(xp, bool) or not isinstance(xp, int) or xp < 0:
            raise InvalidInput(f"xpEarned must be a non-negative integer, got {xp!r}")
        if not isinstance(self.completed, bool):
            raise InvalidInput(f"completed must be true or false, got {self.completed!r}")
        if self.drill_outcome is not None and not self.drill_id:
            raise InvalidInput("drillOutcome given without a drillId")
        after = self.confidence_after
        if after is not None and (not _is_number(after) or not 0.0 <= after <= 1.0):
            raise InvalidInput(f"confidenceAfter must be in [0, 1], got {after!r}")

    @classmethod
    def from_dict(cls, data: dict) -> "SessionOutcome":
        missing = [k for k in ("durationMinutes", "xpEarned", "completed") if k not in data]
        if missing:
            raise InvalidInput(f"Session outcome is missing required fields: {', '.join(missing)}")
        if not isinstance(data["completed"], bool):
            raise InvalidInput(f"completed must be true or false, got {data['completed']!r}")
        raw_outcome = data.get("drillOutcome")
        return cls(
            duration_minutes=data["durationMinutes"],
            xp_earned=data["xpEarned"],
            completed=data["completed"],
            drill_id=data.get("drillId"),
            drill_outcome=Outcome.parse(raw_outcome) if raw_outcome is not None else None,
            confidence_after=data.get("confidenceAfter"),
        )


@dataclass
class ProgressionResult:
    xp_state: XPState
    streak_state: StreakState
    xp_awarded: int
    updated_category_confidence: float
    badges_earned: list[str] = field(default_factory=list)
    streak_event: str = "unchanged"

    def to_dict(self) -> dict:
        return {
            "xpState": self.xp_state.to_dict(),
            "streakState": self.streak_state.to_dict(),
            "xpAwarded": self.xp_awarded,
            "badgesEarned": list(self.badges_earned),
            "updatedCategoryConfidence": self.updated_category_confidence,
            "streakEvent": self.streak_event,
        }
