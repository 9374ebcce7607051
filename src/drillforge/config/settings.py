"""Configuration model for DrillForge."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class FreezePolicy(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class DifficultyConfig(BaseModel):
    base: int = 30
    slope: float = 40.0
    min: int = 1
    max: int = 100


class StruggleConfig(BaseModel):
    success_rate_threshold: float = 0.6
    target_reduction: int = 10
    lookback_attempts: int = 3
    history_window: int = 20
    repeat_sessions_window: int = 2


class ScoringConfig(BaseModel):
    proximity_weight: float = 0.5
    novelty_weight: float = 0.2
    novelty_horizon_days: float = 14.0
    similarity_boost: float = 0.2
    exploration_epsilon: float = 0.05
    exploration_bonus: float = 1.0
    failure_rate_threshold: float = 0.6
    failure_penalty: float = -0.5
    recent_failure_window: int = 3


class AssignmentConfig(BaseModel):
    difficulty: DifficultyConfig = Field(default_factory=DifficultyConfig)
    struggle: StruggleConfig = Field(default_factory=StruggleConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)


class ConfidenceConfig(BaseModel):
    alpha: float = Field(default=0.2, gt=0, le=1)
    partial_alpha: float = Field(default=0.1, ge=0, le=1)
    reinforcement_success_bonus: float = 0.05
    reinforcement_fail_relief: float = 0.02
    default: float = 0.5


class XPConfig(BaseModel):
    multiplier: float = Field(default=1.0, ge=0)
    level_base: int = Field(default=250, gt=0)
    level_step: int = Field(default=50, ge=0)


class XPAwardConfig(BaseModel):
    """Outcome-based XP for a single drill result."""
    base: int = 24
    success_bonus: int = 10
    partial_bonus: int = 4
    reinforcement_multiplier: float = 0.85
    min_award: int = 8
    max_award: int = 60


class StreakConfig(BaseModel):
    freeze_policy: FreezePolicy = FreezePolicy.AUTO


class BadgeConfig(BaseModel):
    streak: dict[int, str] = Field(default_factory=lambda: {
        3: "week_starter",
        7: "week_warrior",
        30: "streak_master",
        100: "streak_legend",
    })
    xp: dict[int, str] = Field(default_factory=lambda: {
        100: "first_hundred_xp",
        5000: "silver_league",
        15000: "gold_league",
        50000: "diamond_league",
    })
    level: dict[int, str] = Field(default_factory=lambda: {
        5: "level_5",
        10: "level_10",
        25: "level_25",
    })


class ProgressionConfig(BaseModel):
    confidence: ConfidenceConfig = Field(default_factory=ConfidenceConfig)
    xp: XPConfig = Field(default_factory=XPConfig)
    xp_award: XPAwardConfig = Field(default_factory=XPAwardConfig)
    streak: StreakConfig = Field(default_factory=StreakConfig)
    badges: BadgeConfig = Field(default_factory=BadgeConfig)


class SessionConfig(BaseModel):
    recovery_inactivity_days: int = 2
    recovery_duration_minutes: int = 10
    recovery_confidence_bias: float = -0.14
    difficulty_bias: dict[str, float] = Field(default_factory=lambda: {
        "easy": -0.12,
        "medium": 0.0,
        "hard": 0.12,
    })
    goal_bias: dict[str, float] = Field(default_factory=lambda: {
        "pro": 0.08,
        "scouted": 0.06,
        "scholarship": 0.04,
        "best-team": 0.02,
    })
    skill_seeds: dict[str, float] = Field(default_factory=lambda: {
        "beginner": 0.32,
        "intermediate": 0.5,
        "advanced": 0.72,
    })
    initial_confidence: dict[str, float] = Field(default_factory=lambda: {
        "shooting": 0.42,
        "passing": 0.5,
        "defense": 0.38,
    })


class Settings(BaseModel):
    assignment: AssignmentConfig = Field(default_factory=AssignmentConfig)
    progression: ProgressionConfig = Field(default_factory=ProgressionConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    data_dir: Path = Path.home() / ".drillforge"
    catalog_path: Optional[Path] = None

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        config_path = config_path or (Path.home() / ".drillforge" / "config.yaml")
        data: dict = {}
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        settings = cls(**data)
        settings.apply_env()
        return settings

    def apply_env(self) -> None:
        """Let DRILLFORGE_* environment variables override file values."""
        data_dir = os.environ.get("DRILLFORGE_DATA_DIR")
        if data_dir:
            self.data_dir = Path(data_dir)
        catalog = os.environ.get("DRILLFORGE_CATALOG")
        if catalog:
            self.catalog_path = Path(catalog)
        multiplier = os.environ.get("DRILLFORGE_XP_MULTIPLIER")
        if multiplier:
            self.progression.xp.multiplier = float(multiplier)

    def save(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        config_path = self.data_dir / "config.yaml"
        with open(config_path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)
