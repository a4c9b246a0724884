"""Tests for the command line interface."""

import pytest
from typer.testing import CliRunner

from soulsync.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_settings(mock_settings):
    """Every invocation shares one throwaway sqlite store."""


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "SoulSync v0.1.0" in result.output


def test_exercises():
    result = runner.invoke(app, ["exercises"])
    assert result.exit_code == 0
    assert "box-breathing" in result.output
    assert "body-scan" in result.output


def test_exercises_by_type():
    result = runner.invoke(app, ["exercises", "--type", "mindfulness"])
    assert result.exit_code == 0
    assert "body-scan" in result.output
    assert "box-breathing" not in result.output


def test_mood_then_insights():
    result = runner.invoke(app, ["mood", "good", "--note", "sunny"])
    assert result.exit_code == 0
    assert "Mood logged: good" in result.output

    result = runner.invoke(app, ["insights", "--json"])
    assert result.exit_code == 0
    assert '"activity_level_percent": 10' in result.output


def test_insights_summary():
    runner.invoke(app, ["journal", "Evening", "--content", "Quiet", "--tag", "calm"])
    result = runner.invoke(app, ["insights"])
    assert result.exit_code == 0
    assert "Journal entries: 1" in result.output


def test_habit():
    result = runner.invoke(app, ["habit", "walk"])
    assert result.exit_code == 0
    assert "✓ walk" in result.output

    result = runner.invoke(app, ["habit", "walk", "--undo"])
    assert "✗ walk" in result.output


def test_goal_and_progress():
    assert runner.invoke(app, ["goal", "0"]).exit_code == 1

    result = runner.invoke(app, ["goal", "4"])
    assert result.exit_code == 0
    assert "Weekly goal: 4 sessions" in result.output

    result = runner.invoke(app, ["progress"])
    assert result.exit_code == 0
    assert "Current streak" in result.output
    assert "0/4" in result.output


def test_unknown_session_exercise():
    result = runner.invoke(app, ["session", "no-such-exercise"])
    assert result.exit_code == 1
    assert "Unknown exercise" in result.output


def test_status():
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "sqlite" in result.output
    assert "OK" in result.output


def test_invalid_log_level():
    result = runner.invoke(app, ["--log-level", "LOUD", "version"])
    assert result.exit_code != 0
