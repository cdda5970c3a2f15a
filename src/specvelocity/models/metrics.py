"""Derived, read-only velocity views."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import Field

from specvelocity.models._base import UtcDatetime, VelocityViewModel
from specvelocity.models.velocity import DailyTaskCount, DayOfWeekCounts, TaskCompletionEvent


class ConsistencyRating(StrEnum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def from_score(cls, score: int) -> ConsistencyRating:
        if score >= 70:
            return cls.HIGH
        if score >= 40:
            return cls.MEDIUM
        return cls.LOW


class SpecProgress(VelocityViewModel):
    """Current task counts of a workstream, supplied by the caller for projections."""

    total_tasks: int = Field(ge=0)
    completed_tasks: int = Field(ge=0)

    @property
    def remaining_tasks(self) -> int:
        return max(0, self.total_tasks - self.completed_tasks)


class RequiredVsOptional(VelocityViewModel):
    required: int = 0
    optional: int = 0


class TimeDistribution(VelocityViewModel):
    """Completed specs bucketed by days from first task to completion."""

    fast: int = 0
    medium: int = 0
    slow: int = 0


class SpecTimeline(VelocityViewModel):
    spec_id: str
    start_date: UtcDatetime | None = None
    end_date: UtcDatetime | None = None
    progress: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0


class VelocityMetrics(VelocityViewModel):
    """Snapshot of every derived metric.

    All numeric fields default to zero; only the projected completion
    date may be ``None`` (no remaining work or no velocity).
    """

    # Tasks
    current_week_tasks: int = 0
    last_week_tasks: int = 0
    tasks_per_week: list[int] = Field(default_factory=list)
    velocity_trend: int = 0
    average_velocity: float = 0.0
    consistency_score: int = 0
    consistency_rating: ConsistencyRating = ConsistencyRating.LOW
    required_vs_optional: RequiredVsOptional = Field(default_factory=RequiredVsOptional)
    day_of_week_velocity: DayOfWeekCounts = Field(default_factory=DayOfWeekCounts)

    # Specs
    specs_per_week: list[int] = Field(default_factory=list)
    current_week_specs: int = 0
    average_specs: float = 0.0
    specs_consistency_score: int = 0
    specs_consistency_rating: ConsistencyRating = ConsistencyRating.LOW
    average_time_to_complete: int = 0
    time_distribution: TimeDistribution = Field(default_factory=TimeDistribution)

    # Projection
    remaining_tasks: int = 0
    projected_completion_date: datetime | None = None
    days_remaining: int = 0

    # Timeline
    daily_activity: list[DailyTaskCount] = Field(default_factory=list)
    recent_events: list[TaskCompletionEvent] = Field(default_factory=list)
    spec_timelines: list[SpecTimeline] = Field(default_factory=list)
