"""Persisted velocity state.

:class:`VelocityData` is the aggregate root and the sole unit of
persistence: the aggregator mutates it in place and writes the whole
document after every recording operation.
"""

from __future__ import annotations

from datetime import date
from enum import StrEnum
from typing import Any

from pydantic import Field, computed_field, field_serializer, field_validator

from specvelocity.bucketing import DayOfWeek, week_bounds
from specvelocity.models._base import UtcDatetime, VelocityBaseModel


class DayOfWeekCounts(VelocityBaseModel):
    """Seven per-weekday task counters (Monday first)."""

    monday: int = Field(default=0, ge=0)
    tuesday: int = Field(default=0, ge=0)
    wednesday: int = Field(default=0, ge=0)
    thursday: int = Field(default=0, ge=0)
    friday: int = Field(default=0, ge=0)
    saturday: int = Field(default=0, ge=0)
    sunday: int = Field(default=0, ge=0)

    def increment(self, day: DayOfWeek) -> None:
        setattr(self, day.value, getattr(self, day.value) + 1)

    def get(self, day: DayOfWeek) -> int:
        return int(getattr(self, day.value))

    def total(self) -> int:
        return sum(self.get(day) for day in DayOfWeek)

    def as_dict(self) -> dict[str, int]:
        return {day.value: self.get(day) for day in DayOfWeek}


class WeeklyTaskData(VelocityBaseModel):
    """Task completions bucketed by ISO week.

    Invariant: ``total == required + optional == day_of_week.total()``.
    """

    week_key: str
    total: int = Field(default=0, ge=0)
    required: int = Field(default=0, ge=0)
    optional: int = Field(default=0, ge=0)
    day_of_week: DayOfWeekCounts = Field(default_factory=DayOfWeekCounts)

    @field_validator("week_key")
    @classmethod
    def _validate_week_key(cls, value: str) -> str:
        # raises ValueError for malformed keys
        week_bounds(value)
        return value

    @computed_field  # type: ignore[prop-decorator]
    @property
    def week_start(self) -> date:
        return week_bounds(self.week_key)[0]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def week_end(self) -> date:
        return week_bounds(self.week_key)[1]

    def record(self, day: DayOfWeek, *, is_required: bool) -> None:
        self.total += 1
        if is_required:
            self.required += 1
        else:
            self.optional += 1
        self.day_of_week.increment(day)

    def is_consistent(self) -> bool:
        return self.total == self.required + self.optional == self.day_of_week.total()


class DailyTaskCount(VelocityBaseModel):
    """Task completions on one UTC calendar day (heatmap cell)."""

    day: str = Field(alias="date")
    total: int = Field(default=0, ge=0)
    required: int = Field(default=0, ge=0)
    optional: int = Field(default=0, ge=0)

    @field_validator("day")
    @classmethod
    def _validate_day(cls, value: str) -> str:
        date.fromisoformat(value)
        return value


class SpecActivityData(VelocityBaseModel):
    """Per-workstream activity and the latest reported progress snapshot.

    ``total_tasks``/``completed_tasks`` are overwritten by each progress
    report; they are not event counters.
    """

    first_task_date: UtcDatetime | None = None
    last_task_date: UtcDatetime | None = None
    total_tasks: int = Field(default=0, ge=0)
    completed_tasks: int = Field(default=0, ge=0)
    completion_date: UtcDatetime | None = None

    @property
    def is_complete(self) -> bool:
        return self.total_tasks > 0 and self.completed_tasks >= self.total_tasks

    @property
    def progress(self) -> int:
        """Completion percentage, 0 when the spec has no tasks."""
        if self.total_tasks <= 0:
            return 0
        return min(100, int(self.completed_tasks * 100 / self.total_tasks + 0.5))


class TaskCompletionEvent(VelocityBaseModel):
    """One entry of the recent-activity stream."""

    timestamp: UtcDatetime
    spec_id: str
    task_id: str
    is_required: bool
    task_description: str | None = None


class LifecycleEventType(StrEnum):
    STARTED = "started"
    COMPLETED = "completed"
    REOPENED = "reopened"


class SpecLifecycleEvent(VelocityBaseModel):
    """A workstream lifecycle transition, kept for timeline views."""

    spec_id: str
    event_type: LifecycleEventType
    timestamp: UtcDatetime
    progress: int = Field(default=0, ge=0, le=100)


class VelocityData(VelocityBaseModel):
    """Aggregate root of the velocity engine.

    ``weekly_tasks`` is held as a mapping keyed by ISO week key and
    serialized as a list sorted by that key, so the persisted document is
    an ordered week sequence while lookups stay O(1).
    """

    weekly_tasks: dict[str, WeeklyTaskData] = Field(default_factory=dict)
    spec_activity: dict[str, SpecActivityData] = Field(default_factory=dict)
    daily_task_counts: dict[str, DailyTaskCount] = Field(default_factory=dict)
    task_completion_events: list[TaskCompletionEvent] = Field(default_factory=list)
    spec_lifecycle_events: list[SpecLifecycleEvent] = Field(default_factory=list)

    @field_validator("weekly_tasks", mode="before")
    @classmethod
    def _index_weeks(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        indexed: dict[str, Any] = {}
        for item in value:
            if isinstance(item, WeeklyTaskData):
                key = item.week_key
            elif isinstance(item, dict):
                key = item.get("weekKey", item.get("week_key"))
            else:
                raise ValueError(f"invalid week bucket: {item!r}")
            if not isinstance(key, str):
                raise ValueError("week bucket is missing its week key")
            if key in indexed:
                raise ValueError(f"duplicate week bucket: {key}")
            indexed[key] = item
        return indexed

    @field_validator("daily_task_counts", mode="before")
    @classmethod
    def _index_days(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        indexed: dict[str, Any] = {}
        for item in value:
            if isinstance(item, DailyTaskCount):
                key = item.day
            elif isinstance(item, dict):
                key = item.get("date", item.get("day"))
            else:
                raise ValueError(f"invalid daily count: {item!r}")
            if not isinstance(key, str):
                raise ValueError("daily count is missing its date")
            indexed[key] = item
        return indexed

    @field_serializer("weekly_tasks")
    def _serialize_weeks(self, weeks: dict[str, WeeklyTaskData]) -> list[WeeklyTaskData]:
        return [weeks[key] for key in sorted(weeks)]

    @field_serializer("daily_task_counts")
    def _serialize_days(self, days: dict[str, DailyTaskCount]) -> list[DailyTaskCount]:
        return [days[key] for key in sorted(days)]

    def ordered_weeks(self) -> list[WeeklyTaskData]:
        """Week buckets in ascending chronological order."""
        return [self.weekly_tasks[key] for key in sorted(self.weekly_tasks)]
