"""Adaptive drill assignment.

Picks the next drill for a user in a category:

1. Map confidence to a target difficulty (``target_difficulty``).
2. Lower the target when recent success is poor (reinforcement).
3. Keep drills inside an asymmetric window around the target, falling back
   to the whole category and then the whole catalog.
4. Score every candidate on proximity, novelty, similarity to recent
   failures, per-drill failure rate and a small random exploration bonus.
5. Take the highest score; ties go to catalog order.

Randomness comes only from the ``rng`` callable (one draw per candidate),
so tests can pin it: ``lambda: 0.0`` forces exploration, ``lambda: 1.0``
disables it.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from drillforge.config.settings import AssignmentConfig, DifficultyConfig
from drillforge.engine.errors import InvalidInput
from drillforge.engine.history import (
    HistorySummary,
    days_since,
    recent_success_rate,
    summarize,
)
from drillforge.engine.models import (
    AssignMeta,
    AssignResult,
    AssignWindow,
    Drill,
    DrillAttempt,
    UserCategoryState,
)

RandomSource = Callable[[], float]

REASON_PROXIMITY = "proximity"
REASON_REINFORCEMENT = "reinforcement"
REASON_EXPLORATION = "exploration"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value, low, high):
    return max(low, min(high, value))


def target_difficulty(confidence: float, params: Optional[DifficultyConfig] = None) -> int:
    """Ideal difficulty for a confidence level, before any reinforcement."""
    p = params or DifficultyConfig()
    return clamp(round_half_up(p.base + (confidence - 0.5) * p.slope), p.min, p.max)


def window_deltas(confidence: float) -> tuple[int, int]:
    """Downward and upward reach of the candidate window.

    Low confidence reaches further down, high confidence further up.
    """
    low = round_half_up(15 + (1 - confidence) * 15)
    high = round_half_up(10 + confidence * 20)
    return low, high


@dataclass
class ScoredCandidate:
    drill: Drill
    proximity: float
    novelty: float
    similarity: float
    exploration: float
    penalty: float
    total: float

    @property
    def explored(self) -> bool:
        return self.exploration > 0


def _novelty(days: float, horizon: float) -> float:
    if days > horizon:
        return 1.0
    return max(0.0, days / horizon)


def score_candidate(
    drill: Drill,
    d_target: int,
    summary: HistorySummary,
    draw: float,
    now: datetime,
    params: Optional[AssignmentConfig] = None,
) -> ScoredCandidate:
    s = (params or AssignmentConfig()).scoring
    proximity = 1 - abs(drill.difficulty_score - d_target) / 100
    novelty = _novelty(
        days_since(summary.last_attempt_iso.get(drill.id), now), s.novelty_horizon_days
    )
    similarity = s.similarity_boost if summary.overlaps_recent_failures(drill.tags) else 0.0
    exploration = s.exploration_bonus if s.exploration_epsilon > 0 and draw <= s.exploration_epsilon else 0.0
    penalty = s.failure_penalty if summary.failure_rate(drill.id) > s.failure_rate_threshold else 0.0
    total = (
        proximity * s.proximity_weight
        + novelty * s.novelty_weight
        + similarity
        + exploration
        + penalty
    )
    return ScoredCandidate(
        drill=drill,
        proximity=proximity,
        novelty=novelty,
        similarity=similarity,
        exploration=exploration,
        penalty=penalty,
        total=total,
    )


def select_candidates(
    catalog: Sequence[Drill],
    category: str,
    low: int,
    high: int,
    reinforcement_queue: Sequence[str] = (),
) -> tuple[list[Drill], Optional[str]]:
    """Drills eligible for scoring plus the fallback tier used, if any."""
    in_category = [d for d in catalog if d.category == category]
    candidates = [d for d in in_category if low <= d.difficulty_score <= high]
    fallback = None
    if not candidates:
        if in_category:
            candidates, fallback = list(in_category), "fallback_category"
        else:
            candidates, fallback = list(catalog), "fallback_catalog"

    by_id = {d.id: d for d in in_category}
    for drill_id in reinforcement_queue:
        queued = by_id.get(drill_id)
        if queued is not None:
            candidates = [queued] + [d for d in candidates if d.id != queued.id]
            break
    return candidates, fallback


def assign(
    category_state: UserCategoryState,
    catalog: Sequence[Drill],
    history: Sequence[DrillAttempt] = (),
    params: Optional[AssignmentConfig] = None,
    rng: Optional[RandomSource] = None,
    now: Optional[datetime] = None,
    reinforcement_queue: Sequence[str] = (),
) -> AssignResult:
    """Choose the next drill for ``category_state.category``.

    Raises InvalidInput for an empty catalog or out-of-range state.
    """
    if not catalog:
        raise InvalidInput("Cannot assign a drill from an empty catalog")
    category_state.validate()

    p = params or AssignmentConfig()
    draw = rng or random.Random().random
    now = now or datetime.now(timezone.utc)
    confidence = category_state.confidence
    category = category_state.category

    success_rate = category_state.recent_success_rate
    if success_rate is None:
        success_rate = recent_success_rate(history, category, p.struggle.lookback_attempts)
    is_reinforcement = (
        success_rate is not None and success_rate < p.struggle.success_rate_threshold
    )

    d_target = target_difficulty(confidence, p.difficulty)
    if is_reinforcement:
        d_target = max(p.difficulty.min, d_target - p.struggle.target_reduction)

    delta_low, delta_high = window_deltas(confidence)
    low, high = d_target - delta_low, d_target + delta_high
    candidates, fallback = select_candidates(
        catalog, category, low, high, reinforcement_queue
    )

    summary = summarize(
        history, category, p.struggle.history_window, p.scoring.recent_failure_window
    )
    best: Optional[ScoredCandidate] = None
    explored = False
    for drill in candidates:
        scored = score_candidate(drill, d_target, summary, draw(), now, p)
        explored = explored or scored.explored
        if best is None or scored.total > best.total:
            best = scored

    reasons = []
    if is_reinforcement:
        reasons.append(REASON_REINFORCEMENT)
    if explored:
        reasons.append(REASON_EXPLORATION)
    reason = "+".join(reasons) or REASON_PROXIMITY
    if fallback:
        reason = f"{reason}:{fallback}"

    meta = AssignMeta(
        confidence_before=confidence,
        d_target=d_target,
        window=AssignWindow(low=clamp(low, 0, 100), high=clamp(high, 0, 100)),
        is_reinforcement=is_reinforcement,
        reason=reason,
    )
    return AssignResult(drill=best.drill, meta=meta)
