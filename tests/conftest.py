"""Shared fixtures for DrillForge tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import yaml

from drillforge.config.settings import Settings
from drillforge.engine.models import Drill, DrillAttempt, DrillContent, Outcome
from drillforge.server.handler import ServerHandler
from drillforge.server.protocol import Notification
from drillforge.service.coach import Coach
from drillforge.state.store import UserStateStore

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_drill():
    def _make(drill_id, difficulty, tags=("footwork",), category="shooting"):
        return Drill(
            id=drill_id,
            title=drill_id,
            category=category,
            difficulty_score=difficulty,
            content=DrillContent(data={"summary": "x", "durationMinutes": 10}),
            tags=frozenset(tags),
        )
    return _make


@pytest.fixture
def make_attempt():
    def _make(drill_id, outcome, difficulty, tags=("footwork",), category="shooting", days_ago=0):
        return DrillAttempt(
            drill_id=drill_id,
            category=category,
            outcome=Outcome(outcome),
            timestamp_iso=(NOW - timedelta(days=days_ago)).isoformat(),
            difficulty_score=difficulty,
            tags=frozenset(tags),
        )
    return _make


@pytest.fixture
def no_explore():
    return lambda: 1.0


@pytest.fixture
def always_explore():
    return lambda: 0.0


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path / "data")


@pytest.fixture
def store(tmp_path):
    return UserStateStore(db_path=tmp_path / "data" / "state.db")


@pytest.fixture
def events():
    return []


@pytest.fixture
def coach(settings, no_explore, events):
    """Coach on the default catalog with exploration switched off."""
    return Coach(
        settings=settings,
        rng=no_explore,
        on_event=lambda name, payload: events.append((name, payload)),
    )


@pytest.fixture
def handler(settings, no_explore):
    """ServerHandler on the default catalog with a tmp state db."""
    notifications: list[Notification] = []

    h = ServerHandler(
        settings=settings,
        write_notification=lambda n: notifications.append(n),
        rng=no_explore,
    )
    h._notifications = notifications
    return h


@pytest.fixture
def catalog_file(tmp_path):
    """A small YAML catalog with two categories."""
    data = {
        "drills": [
            {
                "id": "form_shot",
                "title": "Form Shooting",
                "category": "shooting",
                "difficultyScore": 12,
                "tags": ["release", "balance"],
                "content": {"summary": "Close-range form shots.", "durationMinutes": 8},
            },
            {
                "id": "pull_up",
                "title": "Pull-up Jumper",
                "category": "shooting",
                "difficulty_score": 48,
                "tags": ["footwork", "release"],
            },
            {
                "id": "outlet_pass",
                "title": "Outlet Pass",
                "category": "passing",
                "difficultyScore": 30,
                "tags": ["vision"],
            },
        ]
    }
    path = tmp_path / "catalog.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path
