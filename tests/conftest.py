"""Pytest configuration and fixtures for SoulSync tests."""

from datetime import datetime, timezone

import pytest
import structlog

from soulsync.adapters import ActivityLog, MemoryStoreAdapter
from soulsync.aggregators import InsightsAggregator, ProgressTracker
from soulsync.engine import WellnessEngine
from soulsync.session import ManualScheduler

USER = "tester"


def at(year: int, month: int, day: int, hour: int = 12, minute: int = 0) -> datetime:
    """UTC timestamp helper."""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def mock_settings(monkeypatch, tmp_path):
    """Point every setting at throwaway locations."""
    monkeypatch.setenv("STORE_BACKEND", "sqlite")
    monkeypatch.setenv("STORE_DATABASE_URL", f"sqlite:///{tmp_path / 'soulsync.db'}")
    monkeypatch.setenv("SOULSYNC_USER", USER)
    monkeypatch.setenv("TIMEZONE", "UTC")
    monkeypatch.setenv("PROGRESS_WEEK_START", "sunday")
    monkeypatch.setenv("PROGRESS_DEFAULT_WEEKLY_GOAL", "3")


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'store.db'}"


@pytest.fixture
async def store():
    """Connected in-memory store."""
    adapter = MemoryStoreAdapter()
    await adapter.connect()
    yield adapter
    await adapter.disconnect()


@pytest.fixture
def activity_log(store):
    return ActivityLog(store, "UTC")


@pytest.fixture
def tracker(activity_log):
    return ProgressTracker(activity_log, default_weekly_goal=3, week_start="sunday")


@pytest.fixture
def insights(activity_log):
    return InsightsAggregator(activity_log, window_days=7, week_start="sunday")


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo logging configuration applied by CLI invocations."""
    yield
    structlog.reset_defaults()


@pytest.fixture
async def engine():
    """Engine over an in-memory store with change subscribers attached."""
    async with WellnessEngine(store=MemoryStoreAdapter()) as wellness:
        yield wellness
