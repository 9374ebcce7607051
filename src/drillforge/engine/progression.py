"""Session-outcome updates: XP and level, streak, confidence, badges."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Optional

from drillforge.config.settings import (
    BadgeConfig,
    ConfidenceConfig,
    FreezePolicy,
    ProgressionConfig,
    StreakConfig,
    XPAwardConfig,
    XPConfig,
)
from drillforge.engine.assignment import clamp, round_half_up
from drillforge.engine.models import (
    Outcome,
    ProgressionResult,
    SessionOutcome,
    StreakState,
    UserCategoryState,
    XPState,
    iso_date,
)

STREAK_STARTED = "started"
STREAK_EXTENDED = "extended"
STREAK_SAME_DAY = "same_day"
STREAK_FROZEN = "frozen"
STREAK_BROKEN = "broken"
STREAK_UNCHANGED = "unchanged"

_OUTCOME_TARGET = {
    Outcome.SUCCESS: 1.0,
    Outcome.PARTIAL: 0.5,
    Outcome.FAIL: 0.0,
}


def level_cost(level: int, params: Optional[XPConfig] = None) -> int:
    """XP needed to go from ``level`` to ``level + 1``."""
    p = params or XPConfig()
    return p.level_base + p.level_step * (level - 1)


def level_for_xp(xp: int, params: Optional[XPConfig] = None) -> XPState:
    """Walk the level curve until the remaining XP no longer covers a level."""
    level = 1
    floor = 0
    while xp >= floor + level_cost(level, params):
        floor += level_cost(level, params)
        level += 1
    return XPState(xp=xp, level=level, xp_to_next_level=floor + level_cost(level, params) - xp)


def update_xp(
    xp_state: XPState, xp_earned: int, params: Optional[XPConfig] = None
) -> tuple[XPState, int]:
    """Return the new XP state and the XP actually awarded."""
    p = params or XPConfig()
    awarded = max(0, round_half_up(xp_earned * p.multiplier))
    return level_for_xp(xp_state.xp + awarded, p), awarded


def drill_xp_award(
    outcome: Outcome,
    reinforcement: bool = False,
    params: Optional[XPAwardConfig] = None,
) -> int:
    """XP earned by one drill result, scaled down on reinforcement drills."""
    p = params or XPAwardConfig()
    award = p.base
    if outcome == Outcome.SUCCESS:
        award += p.success_bonus
    elif outcome == Outcome.PARTIAL:
        award += p.partial_bonus
    if reinforcement:
        award *= p.reinforcement_multiplier
    return clamp(round_half_up(award), p.min_award, p.max_award)


def update_confidence(
    confidence: float,
    outcome: Outcome,
    params: Optional[ConfidenceConfig] = None,
    reinforcement: bool = False,
) -> float:
    """Move confidence toward 1 on success, 0 on fail and 0.5 on partial.

    Reinforcement drills reward a success a little more and soften a fail.
    """
    p = params or ConfidenceConfig()
    target = _OUTCOME_TARGET[outcome]
    if outcome == Outcome.PARTIAL:
        alpha = p.partial_alpha
    else:
        alpha = p.alpha
        if reinforcement and outcome == Outcome.SUCCESS:
            alpha += p.reinforcement_success_bonus
        elif reinforcement and outcome == Outcome.FAIL:
            # keep a fail strictly lowering confidence
            alpha = max(alpha - p.reinforcement_fail_relief, alpha / 2)
    alpha = clamp(alpha, 0.0, 1.0)
    return clamp(confidence + alpha * (target - confidence), 0.0, 1.0)


def update_streak(
    streak: StreakState,
    session_date: date,
    params: Optional[StreakConfig] = None,
    use_freeze: bool = False,
) -> tuple[StreakState, str]:
    """Apply one completed session on ``session_date`` to the streak."""
    p = params or StreakConfig()
    last = iso_date(streak.last_active_iso)
    session_iso = session_date.isoformat()
    tokens = streak.freeze_tokens

    if last is None:
        current, event = 1, STREAK_STARTED
    else:
        gap = (session_date - last).days
        if gap <= 0:
            current, event = max(streak.current, 1), STREAK_SAME_DAY
            if gap < 0:
                session_iso = streak.last_active_iso
        elif gap == 1:
            current, event = streak.current + 1, STREAK_EXTENDED
        elif gap == 2 and tokens > 0 and (p.freeze_policy == FreezePolicy.AUTO or use_freeze):
            current, event = max(streak.current, 1), STREAK_FROZEN
            tokens -= 1
        else:
            current = 1
            event = STREAK_BROKEN if streak.current > 0 else STREAK_STARTED

    updated = StreakState(
        current=current,
        longest=max(streak.longest, current),
        last_active_iso=session_iso,
        freeze_tokens=tokens,
    )
    return updated, event


def _crossed(thresholds: dict[int, str], before: int, after: int) -> list[str]:
    return [badge for threshold, badge in sorted(thresholds.items()) if before < threshold <= after]


def evaluate_badges(
    xp_before: XPState,
    xp_after: XPState,
    streak_before: StreakState,
    streak_after: StreakState,
    params: Optional[BadgeConfig] = None,
) -> list[str]:
    """Badge ids whose threshold was crossed by this update."""
    p = params or BadgeConfig()
    return (
        _crossed(p.streak, streak_before.current, streak_after.current)
        + _crossed(p.xp, xp_before.xp, xp_after.xp)
        + _crossed(p.level, xp_before.level, xp_after.level)
    )


def complete_session(
    streak: StreakState,
    xp: XPState,
    category_state: UserCategoryState,
    outcome: SessionOutcome,
    params: Optional[ProgressionConfig] = None,
    now: Optional[datetime] = None,
    reinforcement: bool = False,
    use_freeze: bool = False,
) -> ProgressionResult:
    """Fold one session outcome into the user's XP, streak and confidence.

    Sessions that were not completed still award XP and move confidence,
    but leave the streak alone.
    """
    outcome.validate()
    category_state.validate()
    p = params or ProgressionConfig()
    now = now or datetime.now(timezone.utc)

    xp_after, awarded = update_xp(xp, outcome.xp_earned, p.xp)

    if outcome.completed:
        streak_after, event = update_streak(
            streak, now.astimezone(timezone.utc).date(), p.streak, use_freeze
        )
    else:
        streak_after, event = replace(streak), STREAK_UNCHANGED

    confidence = category_state.confidence
    if outcome.confidence_after is not None:
        confidence = outcome.confidence_after
    elif outcome.drill_outcome is not None:
        confidence = update_confidence(
            confidence, outcome.drill_outcome, p.confidence, reinforcement
        )

    return ProgressionResult(
        xp_state=xp_after,
        streak_state=streak_after,
        xp_awarded=awarded,
        updated_category_confidence=confidence,
        badges_earned=evaluate_badges(xp, xp_after, streak, streak_after, p.badges),
        streak_event=event,
    )
