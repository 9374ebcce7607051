"""Summaries over a bounded window of recent drill attempts."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from drillforge.engine.models import DrillAttempt, Outcome, parse_iso

NEVER_ATTEMPTED_DAYS = 999.0


def days_since(iso: Optional[str], now: datetime) -> float:
    """Fractional days between ``iso`` and ``now``; never negative."""
    then = parse_iso(iso)
    if then is None:
        return NEVER_ATTEMPTED_DAYS
    return max(0.0, (now - then).total_seconds() / 86400)


def recent_window(
    history: Sequence[DrillAttempt], category: str, size: int
) -> list[DrillAttempt]:
    """The last ``size`` attempts in ``category``, oldest first."""
    in_category = [a for a in history if a.category == category]
    return in_category[-size:] if size > 0 else []


def recent_success_rate(
    history: Sequence[DrillAttempt], category: str, lookback: int
) -> Optional[float]:
    """Share of success-like outcomes over the last ``lookback`` attempts.

    Partial outcomes count as success-like. Returns None when the user has no
    attempts in the category, so callers can tell "no signal" from "0%".
    """
    recent = recent_window(history, category, lookback)
    if not recent:
        return None
    success_like = sum(1 for a in recent if a.outcome in (Outcome.SUCCESS, Outcome.PARTIAL))
    return success_like / len(recent)


@dataclass
class HistorySummary:
    """Per-drill facts the scorer needs, precomputed once per assignment."""
    last_attempt_iso: dict[str, str] = field(default_factory=dict)
    attempts: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    failures: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    failure_tags: list[frozenset[str]] = field(default_factory=list)

    def failure_rate(self, drill_id: str) -> float:
        total = self.attempts.get(drill_id, 0)
        if total == 0:
            return 0.0
        return self.failures.get(drill_id, 0) / total

    def overlaps_recent_failures(self, tags: frozenset[str]) -> bool:
        return any(tags & failed for failed in self.failure_tags)


def summarize(
    history: Sequence[DrillAttempt],
    category: str,
    window: int,
    failure_window: int,
) -> HistorySummary:
    """Build a HistorySummary from the last ``window`` attempts in ``category``.

    ``failure_tags`` holds the tag sets of the last ``failure_window`` failed
    attempts inside that window.
    """
    summary = HistorySummary()
    recent = recent_window(history, category, window)
    failed: list[DrillAttempt] = []
    for attempt in recent:
        summary.last_attempt_iso[attempt.drill_id] = attempt.timestamp_iso
        summary.attempts[attempt.drill_id] += 1
        if attempt.outcome == Outcome.FAIL:
            summary.failures[attempt.drill_id] += 1
            failed.append(attempt)
    if failure_window > 0:
        summary.failure_tags = [a.tags for a in failed[-failure_window:] if a.tags]
    return summary
