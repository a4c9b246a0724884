"""Aggregators turning activity logs into progress and insights."""

from soulsync.aggregators.insights import InsightsAggregator, compute_insight
from soulsync.aggregators.progress import (
    ProgressTracker,
    habit_streak_percentages,
    longest_completed_run,
)

__all__ = [
    "InsightsAggregator",
    "ProgressTracker",
    "compute_insight",
    "habit_streak_percentages",
    "longest_completed_run",
]
