"""Tests for the adaptive assignment engine."""

from __future__ import annotations

from datetime import timedelta

import pytest

from drillforge.config.settings import AssignmentConfig, DifficultyConfig, ScoringConfig
from drillforge.engine.assignment import (
    assign,
    score_candidate,
    select_candidates,
    target_difficulty,
    window_deltas,
)
from drillforge.engine.errors import InvalidInput
from drillforge.engine.history import summarize
from drillforge.engine.models import UserCategoryState


def _state(confidence, rate=None, category="shooting"):
    return UserCategoryState(category=category, confidence=confidence, recent_success_rate=rate)


class TestTargetDifficulty:
    def test_midpoint_confidence_maps_to_base(self):
        assert target_difficulty(0.5) == 30

    def test_monotonic_in_confidence(self):
        values = [target_difficulty(i / 100) for i in range(101)]
        assert values == sorted(values)

    def test_clamped_to_bounds(self):
        high = DifficultyConfig(base=90, slope=100)
        low = DifficultyConfig(base=10, slope=100)
        assert target_difficulty(1.0, high) == 100
        assert target_difficulty(0.0, low) == 1

    def test_window_deltas_are_asymmetric(self):
        assert window_deltas(0.0) == (30, 10)
        assert window_deltas(1.0) == (15, 30)
        assert window_deltas(0.5) == (23, 20)


class TestScenarios:
    def test_confident_user_gets_harder_drill(self, make_drill, no_explore, now):
        drills = [make_drill("d1", 30), make_drill("d2", 42), make_drill("d3", 60)]
        result = assign(_state(0.85), drills, [], rng=no_explore, now=now)

        assert result.meta.d_target > 40
        assert result.drill.difficulty_score >= 35
        assert result.meta.is_reinforcement is False
        assert result.meta.reason == "proximity"
        assert (result.meta.window.low, result.meta.window.high) == (27, 71)

    def test_struggling_user_gets_reinforcement(self, make_drill, make_attempt, no_explore, now):
        drills = [
            make_drill("easy", 18, ["release"]),
            make_drill("medium", 36, ["release"]),
            make_drill("hard", 54, ["arc"]),
        ]
        history = [
            make_attempt("hard", "fail", 54, ["arc"]),
            make_attempt("medium", "fail", 36, ["release"]),
            make_attempt("medium", "partial", 36, ["release"]),
        ]
        result = assign(_state(0.3), drills, history, rng=no_explore, now=now)

        assert result.meta.is_reinforcement is True
        assert result.meta.d_target < 30
        assert "reinforcement" in result.meta.reason
        assert result.drill.id == "easy"

    def test_forced_exploration(self, make_drill, make_attempt, now):
        drills = [make_drill("novel", 48), make_drill("familiar", 45)]
        history = [make_attempt("familiar", "success", 45)]
        result = assign(_state(0.7), drills, history, rng=lambda: 0.01, now=now)

        assert result.drill.id in ("novel", "familiar")
        assert "exploration" in result.meta.reason

    def test_exploration_threshold_is_inclusive(self, make_drill, now):
        result = assign(_state(0.5), [make_drill("a", 30)], [], rng=lambda: 0.05, now=now)
        assert result.meta.reason == "exploration"

    def test_exploration_reason_when_explored_drill_loses(self, make_drill, now):
        params = AssignmentConfig(scoring=ScoringConfig(exploration_bonus=0.05))
        drills = [make_drill("far", 45), make_drill("close", 30)]
        draws = iter([0.0, 1.0])
        result = assign(_state(0.5), drills, [], params=params, rng=lambda: next(draws), now=now)

        assert result.drill.id == "close"
        assert result.meta.reason == "exploration"

    def test_disabled_exploration_prefers_novel_drill(self, make_drill, make_attempt, no_explore, now):
        drills = [make_drill("novel", 48), make_drill("familiar", 45)]
        history = [make_attempt("familiar", "success", 45)]
        result = assign(_state(0.7), drills, history, rng=no_explore, now=now)

        assert result.drill.id == "novel"
        assert result.meta.reason == "proximity"


class TestReinforcement:
    def test_explicit_success_rate_wins_over_history(self, make_drill, make_attempt, no_explore, now):
        history = [make_attempt("a", "fail", 30) for _ in range(3)]
        result = assign(_state(0.5, rate=0.9), [make_drill("a", 30)], history, rng=no_explore, now=now)
        assert result.meta.is_reinforcement is False

    @pytest.mark.parametrize("confidence", [0.0, 0.25, 0.5, 0.75, 1.0])
    def test_penalty_never_raises_target(self, make_drill, no_explore, now, confidence):
        drills = [make_drill("a", 30)]
        plain = assign(_state(confidence, rate=0.9), drills, rng=no_explore, now=now)
        struggling = assign(_state(confidence, rate=0.5), drills, rng=no_explore, now=now)

        assert struggling.meta.is_reinforcement is True
        assert struggling.meta.d_target <= plain.meta.d_target
        assert struggling.meta.d_target >= 1

    def test_no_history_means_no_reinforcement(self, make_drill, no_explore, now):
        result = assign(_state(0.2), [make_drill("a", 20)], [], rng=no_explore, now=now)
        assert result.meta.is_reinforcement is False

    def test_queued_drill_joins_candidates_first(self, make_drill):
        drills = [make_drill("near", 30), make_drill("far", 90)]
        candidates, fallback = select_candidates(drills, "shooting", 10, 50, ["far"])
        assert [d.id for d in candidates] == ["far", "near"]
        assert fallback is None

    def test_queue_ignores_other_categories(self, make_drill):
        drills = [make_drill("near", 30), make_drill("pass", 30, category="passing")]
        candidates, _ = select_candidates(drills, "shooting", 10, 50, ["pass"])
        assert [d.id for d in candidates] == ["near"]


class TestCandidates:
    def test_falls_back_to_category(self, make_drill, no_explore, now):
        drills = [make_drill("hard", 95), make_drill("other", 10, category="passing")]
        result = assign(_state(0.0), drills, rng=no_explore, now=now)
        assert result.drill.id == "hard"
        assert result.meta.reason == "proximity:fallback_category"

    def test_falls_back_to_catalog(self, make_drill, no_explore, now):
        drills = [make_drill("shot", 30)]
        result = assign(_state(0.5, category="passing"), drills, rng=no_explore, now=now)
        assert result.drill.id == "shot"
        assert result.meta.reason.endswith("fallback_catalog")

    def test_category_drill_beats_perfect_other_category(self, make_drill, no_explore, now):
        drills = [make_drill("other", 30, category="passing"), make_drill("mine", 95)]
        result = assign(_state(0.5), drills, rng=no_explore, now=now)
        assert result.drill.category == "shooting"

    @pytest.mark.parametrize("confidence", [i / 10 for i in range(11)])
    def test_always_returns_requested_category(self, make_drill, no_explore, now, confidence):
        drills = [
            make_drill("p1", 30, category="passing"),
            make_drill("s1", 5),
            make_drill("p2", 60, category="passing"),
            make_drill("s2", 80),
        ]
        result = assign(_state(confidence), drills, rng=no_explore, now=now)
        assert result.drill.category == "shooting"

    def test_ties_go_to_catalog_order(self, make_drill, no_explore, now):
        drills = [make_drill("first", 30), make_drill("second", 30)]
        result = assign(_state(0.5), drills, rng=no_explore, now=now)
        assert result.drill.id == "first"

    def test_one_draw_per_candidate(self, make_drill, now):
        calls = []

        def rng():
            calls.append(1)
            return 1.0

        drills = [make_drill("a", 25), make_drill("b", 30), make_drill("c", 35)]
        assign(_state(0.5), drills, rng=rng, now=now)
        assert len(calls) == 3


class TestScoring:
    def test_similarity_to_recent_failures(self, make_drill, make_attempt, no_explore, now):
        drills = [make_drill("a", 30, ["arc"]), make_drill("b", 32, ["release"])]
        history = [make_attempt("x", "fail", 40, ["release"], days_ago=30)]
        result = assign(_state(0.5, rate=1.0), drills, history, rng=no_explore, now=now)
        assert result.drill.id == "b"

    def test_high_failure_rate_is_penalized(self, make_drill, make_attempt, no_explore, now):
        drills = [make_drill("a", 30, ["arc"]), make_drill("b", 34, ["footwork"])]
        history = [make_attempt("a", "fail", 30, ["arc"], days_ago=20) for _ in range(3)]
        result = assign(_state(0.5, rate=1.0), drills, history, rng=no_explore, now=now)
        assert result.drill.id == "b"

    def test_novelty_ramps_over_two_weeks(self, make_drill, make_attempt, now):
        drill = make_drill("a", 30)
        config = AssignmentConfig()

        fresh = score_candidate(drill, 30, summarize([], "shooting", 20, 3), 1.0, now, config)
        week = score_candidate(
            drill, 30, summarize([make_attempt("a", "success", 30, days_ago=7)], "shooting", 20, 3),
            1.0, now, config,
        )
        old = score_candidate(
            drill, 30, summarize([make_attempt("a", "success", 30, days_ago=15)], "shooting", 20, 3),
            1.0, now, config,
        )

        assert fresh.novelty == 1.0
        assert week.novelty == pytest.approx(0.5)
        assert old.novelty == 1.0

    def test_total_combines_weights(self, make_drill, now):
        scored = score_candidate(
            make_drill("a", 40), 30, summarize([], "shooting", 20, 3), 0.0, now
        )
        assert scored.proximity == pytest.approx(0.9)
        assert scored.total == pytest.approx(0.9 * 0.5 + 1.0 * 0.2 + 1.0)
        assert scored.explored is True

    def test_history_window_is_bounded(self, make_attempt):
        history = [make_attempt(f"d{i}", "fail", 30, days_ago=30 - i) for i in range(30)]
        summary = summarize(history, "shooting", window=10, failure_window=3)
        assert set(summary.attempts) == {f"d{i}" for i in range(20, 30)}
        assert len(summary.failure_tags) == 3


class TestInvalidInput:
    def test_empty_catalog(self):
        with pytest.raises(InvalidInput, match="empty catalog"):
            assign(_state(0.5), [], [])

    def test_confidence_out_of_range(self, make_drill):
        with pytest.raises(InvalidInput, match="Confidence"):
            assign(_state(1.5), [make_drill("a", 30)], [])

    def test_success_rate_out_of_range(self, make_drill):
        with pytest.raises(InvalidInput, match="recentSuccessRate"):
            assign(_state(0.5, rate=-0.1), [make_drill("a", 30)], [])

    def test_invalid_input_is_a_value_error(self):
        assert issubclass(InvalidInput, ValueError)
