"""Tests for the click command line."""

import json

import pytest
from click.testing import CliRunner

from drillforge.cli import main


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("DRILLFORGE_DATA_DIR", raising=False)
    monkeypatch.delenv("DRILLFORGE_CATALOG", raising=False)
    return CliRunner()


def test_categories(runner, tmp_path):
    result = runner.invoke(main, ["--data-dir", str(tmp_path / "data"), "categories"])
    assert result.exit_code == 0
    assert "shooting: 80 drills" in result.output


def test_assign_and_progress(runner, tmp_path):
    data_dir = str(tmp_path / "data")
    result = runner.invoke(main, ["--data-dir", data_dir, "assign", "u1", "defense"])
    assert result.exit_code == 0
    assert result.output.startswith("defense_drill_")
    assert "reason" in result.output

    result = runner.invoke(main, ["--data-dir", data_dir, "progress", "u1"])
    assert result.exit_code == 0
    progress = json.loads(result.output)
    assert progress["confidence"] == {"defense": 0.38}
    assert progress["xpState"]["xp"] == 0


def test_assign_with_goal(runner, tmp_path):
    data_dir = str(tmp_path / "data")
    result = runner.invoke(main, ["--data-dir", data_dir, "assign", "u1", "passing", "--goal", "pro"])
    assert result.exit_code == 0
    assert "confidence 0.58" in result.output
