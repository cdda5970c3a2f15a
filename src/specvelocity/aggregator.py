"""Velocity aggregation engine.

:class:`VelocityAggregator` owns the in-memory :class:`VelocityData`
snapshot, applies completion events to it, persists the full snapshot
after every mutation and derives metrics on demand.

Usage::

    store = JsonFileStateStore(".specvelocity")
    async with VelocityAggregator(store) as aggregator:
        await aggregator.record_task_completion("auth-flow", "3.1", is_required=True)
        metrics = aggregator.calculate_metrics()

Recording operations are not safe to overlap on one instance; callers
serialize them. Each one finishes its mutation and copies the snapshot
before awaiting the store, so a slow write never observes a half-applied
event.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from specvelocity.bucketing import (
    date_key_of,
    day_of_week_of,
    days_between,
    recent_date_keys,
    recent_week_keys,
    round_half_up,
    to_utc,
    week_key_of,
)
from specvelocity.config import VelocityConfig
from specvelocity.exceptions import PersistenceError, PreconditionError
from specvelocity.models.metrics import (
    ConsistencyRating,
    RequiredVsOptional,
    SpecProgress,
    SpecTimeline,
    TimeDistribution,
    VelocityMetrics,
)
from specvelocity.models.velocity import (
    DailyTaskCount,
    DayOfWeekCounts,
    LifecycleEventType,
    SpecActivityData,
    SpecLifecycleEvent,
    TaskCompletionEvent,
    VelocityData,
    WeeklyTaskData,
)
from specvelocity.state.store import VelocityStateStore

_logger = logging.getLogger(__name__)

#: Task descriptions kept in the activity stream are truncated to this length.
TASK_DESCRIPTION_LIMIT = 50

#: Upper bounds (days, inclusive) of the "fast" and "medium" time-to-complete buckets.
FAST_SPEC_DAYS = 10
MEDIUM_SPEC_DAYS = 20


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _require_id(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value


def _require_count(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
    return value


def _consistency_score(values: Sequence[int], *, idle_score: int) -> int:
    """100 minus the coefficient of variation (as a percentage), clamped to 0-100.

    *idle_score* is returned when every value is zero.
    """
    if not values:
        return 0
    mean = sum(values) / len(values)
    if mean == 0:
        return idle_score
    variance = sum((value - mean) ** 2 for value in values) / len(values)
    score = 100 - (math.sqrt(variance) / mean) * 100
    return int(round_half_up(max(0.0, min(100.0, score))))


def _mean(values: Sequence[int]) -> float:
    if not values:
        return 0.0
    return round_half_up(sum(values) / len(values), 1)


class VelocityAggregator:
    """Records completion events and derives velocity metrics.

    Parameters
    ----------
    store : VelocityStateStore
        Persistence for the snapshot.
    config : VelocityConfig or None
        Window sizes and retention limits. Defaults to ``VelocityConfig()``.
    clock : callable
        Returns the current time; used for "current week" queries, for
        completion marking without an explicit timestamp and for daily
        count retention.
    """

    def __init__(
        self,
        store: VelocityStateStore,
        *,
        config: VelocityConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._config = config or VelocityConfig()
        self._clock = clock
        self._data: VelocityData | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> VelocityAggregator:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()

    @property
    def is_initialized(self) -> bool:
        return self._data is not None

    async def initialize(self) -> None:
        """Load the snapshot from the store, or start empty when none exists."""
        if self._closed:
            raise PreconditionError("Aggregator has been closed")
        try:
            saved = await self._store.get_velocity_data()
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"Could not load velocity data: {exc}") from exc

        self._data = saved if saved is not None else VelocityData()
        _logger.debug(
            "Velocity data loaded weeks=%d specs=%d (stored=%s)",
            len(self._data.weekly_tasks),
            len(self._data.spec_activity),
            saved is not None,
        )

    def close(self) -> None:
        """Release the in-memory snapshot; further calls raise PreconditionError."""
        self._closed = True
        self._data = None

    def _require_data(self) -> VelocityData:
        if self._data is None:
            if self._closed:
                raise PreconditionError("Aggregator has been closed")
            raise PreconditionError("Aggregator not initialized. Call 'await aggregator.initialize()' first")
        return self._data

    def _now(self) -> datetime:
        return to_utc(self._clock())

    async def _save(self, snapshot: VelocityData) -> None:
        try:
            await self._store.save_velocity_data(snapshot)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"Could not save velocity data: {exc}") from exc

    async def persist(self) -> None:
        """Write the current snapshot to the store.

        Recording operations call this implicitly; call it directly to retry
        after a :class:`PersistenceError` without replaying the event.
        """
        data = self._require_data()
        await self._save(data.model_copy(deep=True))

    async def reset(self) -> None:
        """Discard all recorded history and persist the empty snapshot."""
        self._require_data()
        self._data = VelocityData()
        _logger.debug("Velocity data reset")
        await self.persist()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def record_task_completion(
        self,
        spec_id: str,
        task_id: str,
        is_required: bool,
        timestamp: datetime | None = None,
        *,
        task_description: str | None = None,
    ) -> None:
        """Count one task completion in its week, day and workstream.

        ``task_id`` is kept for traceability only: reporting the same task
        twice counts it twice.
        """
        data = self._require_data()
        _require_id("spec_id", spec_id)
        _require_id("task_id", task_id)
        ts = to_utc(timestamp) if timestamp is not None else self._now()

        week_key = week_key_of(ts)
        bucket = data.weekly_tasks.get(week_key)
        if bucket is None:
            bucket = WeeklyTaskData(week_key=week_key)
            data.weekly_tasks[week_key] = bucket
        bucket.record(day_of_week_of(ts), is_required=is_required)

        self._touch_spec_activity(data, spec_id, ts)
        self._record_daily_count(data, ts, is_required)

        description = task_description[:TASK_DESCRIPTION_LIMIT] if task_description else None
        data.task_completion_events.append(
            TaskCompletionEvent(
                timestamp=ts,
                spec_id=spec_id,
                task_id=task_id,
                is_required=is_required,
                task_description=description,
            )
        )
        overflow = len(data.task_completion_events) - self._config.event_limit
        if overflow > 0:
            del data.task_completion_events[:overflow]

        _logger.debug(
            "Task completion recorded spec=%s task=%s required=%s week=%s total=%d",
            spec_id,
            task_id,
            is_required,
            week_key,
            bucket.total,
        )
        await self._save(data.model_copy(deep=True))

    async def record_spec_completion(
        self,
        spec_id: str,
        total_tasks: int,
        completed_tasks: int,
        timestamp: datetime | None = None,
    ) -> None:
        """Mark a workstream completed at *timestamp*, overwriting its counts."""
        data = self._require_data()
        _require_id("spec_id", spec_id)
        _require_count("total_tasks", total_tasks)
        _require_count("completed_tasks", completed_tasks)
        ts = to_utc(timestamp) if timestamp is not None else self._now()

        activity = self._spec_activity(data, spec_id)
        activity.total_tasks = total_tasks
        activity.completed_tasks = completed_tasks
        activity.completion_date = ts
        data.spec_lifecycle_events.append(
            SpecLifecycleEvent(spec_id=spec_id, event_type=LifecycleEventType.COMPLETED, timestamp=ts, progress=100)
        )

        _logger.debug("Spec completion recorded spec=%s at %s", spec_id, ts.isoformat())
        await self._save(data.model_copy(deep=True))

    async def update_spec_progress(
        self,
        spec_id: str,
        total_tasks: int,
        completed_tasks: int,
        timestamp: datetime | None = None,
    ) -> None:
        """Store the latest progress snapshot and derive completion from it.

        A workstream becoming complete gets ``completion_date`` set to
        *timestamp* (the clock when omitted); one that drops below
        complete has it cleared. An already complete workstream keeps
        its original completion date.
        """
        data = self._require_data()
        _require_id("spec_id", spec_id)
        _require_count("total_tasks", total_tasks)
        _require_count("completed_tasks", completed_tasks)

        activity = self._spec_activity(data, spec_id)
        was_completed = activity.completion_date is not None
        activity.total_tasks = total_tasks
        activity.completed_tasks = completed_tasks

        if activity.is_complete and not was_completed:
            ts = to_utc(timestamp) if timestamp is not None else self._now()
            activity.completion_date = ts
            data.spec_lifecycle_events.append(
                SpecLifecycleEvent(
                    spec_id=spec_id, event_type=LifecycleEventType.COMPLETED, timestamp=ts, progress=100
                )
            )
            _logger.debug("Spec completed spec=%s at %s", spec_id, ts.isoformat())
        elif not activity.is_complete and was_completed:
            activity.completion_date = None
            ts = to_utc(timestamp) if timestamp is not None else self._now()
            data.spec_lifecycle_events.append(
                SpecLifecycleEvent(
                    spec_id=spec_id,
                    event_type=LifecycleEventType.REOPENED,
                    timestamp=ts,
                    progress=activity.progress,
                )
            )
            _logger.debug("Spec reopened spec=%s (%d/%d)", spec_id, completed_tasks, total_tasks)

        await self._save(data.model_copy(deep=True))

    @staticmethod
    def _spec_activity(data: VelocityData, spec_id: str) -> SpecActivityData:
        activity = data.spec_activity.get(spec_id)
        if activity is None:
            activity = SpecActivityData()
            data.spec_activity[spec_id] = activity
        return activity

    def _touch_spec_activity(self, data: VelocityData, spec_id: str, ts: datetime) -> None:
        activity = self._spec_activity(data, spec_id)
        if activity.first_task_date is None:
            activity.first_task_date = ts
            activity.last_task_date = ts
            data.spec_lifecycle_events.append(
                SpecLifecycleEvent(
                    spec_id=spec_id,
                    event_type=LifecycleEventType.STARTED,
                    timestamp=ts,
                    progress=activity.progress,
                )
            )
            return
        # first_task_date is fixed once set; last_task_date only moves forward
        if activity.last_task_date is None or ts > activity.last_task_date:
            activity.last_task_date = ts

    def _record_daily_count(self, data: VelocityData, ts: datetime, is_required: bool) -> None:
        day_key = date_key_of(ts)
        daily = data.daily_task_counts.get(day_key)
        if daily is None:
            daily = DailyTaskCount(day=day_key)
            data.daily_task_counts[day_key] = daily
        daily.total += 1
        if is_required:
            daily.required += 1
        else:
            daily.optional += 1

        cutoff = date_key_of(self._now() - timedelta(days=self._config.daily_retention_days))
        for stale in [key for key in data.daily_task_counts if key < cutoff]:
            del data.daily_task_counts[stale]

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    def get_tasks_per_week(self, num_weeks: int) -> list[int]:
        """Task totals for the last *num_weeks* calendar weeks, oldest first."""
        return self._tasks_window(self._require_data(), self._now(), num_weeks)

    def get_specs_per_week(self, num_weeks: int) -> list[int]:
        """Workstreams completed in each of the last *num_weeks* calendar weeks."""
        return self._specs_window(self._require_data(), self._now(), num_weeks)

    @staticmethod
    def _tasks_window(data: VelocityData, now: datetime, num_weeks: int) -> list[int]:
        result = []
        for key in recent_week_keys(now, num_weeks):
            bucket = data.weekly_tasks.get(key)
            result.append(bucket.total if bucket is not None else 0)
        return result

    @staticmethod
    def _specs_window(data: VelocityData, now: datetime, num_weeks: int) -> list[int]:
        completions = Counter(
            week_key_of(activity.completion_date)
            for activity in data.spec_activity.values()
            if activity.completion_date is not None
        )
        return [completions.get(key, 0) for key in recent_week_keys(now, num_weeks)]

    # ------------------------------------------------------------------
    # Task metrics
    # ------------------------------------------------------------------

    def calculate_trend(self) -> int:
        """Percentage change of this week's task total versus last week's."""
        current, last = self._current_and_last(self._require_data(), self._now())
        return self._trend(current, last)

    def calculate_rolling_average(self, weeks: int) -> float:
        """Mean weekly task total over the last *weeks* calendar weeks."""
        return _mean(self._tasks_window(self._require_data(), self._now(), weeks))

    def calculate_consistency_score(self) -> int:
        return _consistency_score(self.get_tasks_per_week(self._config.consistency_weeks), idle_score=100)

    def get_consistency_rating(self) -> ConsistencyRating:
        return ConsistencyRating.from_score(self.calculate_consistency_score())

    def _current_and_last(self, data: VelocityData, now: datetime) -> tuple[int, int]:
        last, current = self._tasks_window(data, now, 2)
        return current, last

    @staticmethod
    def _trend(current: int, last: int) -> int:
        if last == 0:
            return 100 if current > 0 else 0
        return int(math.copysign(round_half_up(abs(current - last) / last * 100), current - last))

    # ------------------------------------------------------------------
    # Spec metrics
    # ------------------------------------------------------------------

    def calculate_avg_time_to_complete(self) -> int:
        """Mean days from first task to completion over completed workstreams."""
        return self._avg_time_to_complete(self._require_data())

    def calculate_time_distribution(self) -> TimeDistribution:
        return self._time_distribution(self._require_data())

    @classmethod
    def _avg_time_to_complete(cls, data: VelocityData) -> int:
        durations = cls._completion_durations(data)
        if not durations:
            return 0
        return int(round_half_up(sum(durations) / len(durations)))

    @classmethod
    def _time_distribution(cls, data: VelocityData) -> TimeDistribution:
        fast = medium = slow = 0
        for days in cls._completion_durations(data):
            if days <= FAST_SPEC_DAYS:
                fast += 1
            elif days <= MEDIUM_SPEC_DAYS:
                medium += 1
            else:
                slow += 1
        return TimeDistribution(fast=fast, medium=medium, slow=slow)

    @staticmethod
    def _completion_durations(data: VelocityData) -> list[int]:
        return [
            days_between(activity.first_task_date, activity.completion_date)
            for activity in data.spec_activity.values()
            if activity.first_task_date is not None and activity.completion_date is not None
        ]

    def get_spec_activity(self, spec_id: str) -> SpecActivityData | None:
        activity = self._require_data().spec_activity.get(spec_id)
        return activity.model_copy(deep=True) if activity is not None else None

    def get_spec_timelines(self) -> list[SpecTimeline]:
        return self._spec_timelines(self._require_data())

    @staticmethod
    def _spec_timelines(data: VelocityData) -> list[SpecTimeline]:
        return [
            SpecTimeline(
                spec_id=spec_id,
                start_date=activity.first_task_date,
                end_date=activity.completion_date,
                progress=activity.progress,
                total_tasks=activity.total_tasks,
                completed_tasks=activity.completed_tasks,
            )
            for spec_id, activity in data.spec_activity.items()
        ]

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def get_remaining_tasks(self, specs: Sequence[SpecProgress] | None = None) -> int:
        """Open tasks across *specs*, or across tracked workstreams when omitted."""
        return self._remaining_tasks(self._require_data(), specs)

    def project_completion_date(self, specs: Sequence[SpecProgress] | None = None) -> datetime | None:
        """Date the remaining work finishes at the rolling-average velocity.

        ``None`` when there is nothing left to do or no recent velocity.
        """
        return self._projected_completion(self._require_data(), self._now(), specs)

    def calculate_days_remaining(self, specs: Sequence[SpecProgress] | None = None) -> int:
        now = self._now()
        return self._days_remaining(now, self._projected_completion(self._require_data(), now, specs))

    @staticmethod
    def _remaining_tasks(data: VelocityData, specs: Sequence[SpecProgress] | None) -> int:
        if specs is None:
            return sum(
                max(0, activity.total_tasks - activity.completed_tasks) for activity in data.spec_activity.values()
            )
        return sum(spec.remaining_tasks for spec in specs)

    def _projected_completion(
        self, data: VelocityData, now: datetime, specs: Sequence[SpecProgress] | None
    ) -> datetime | None:
        remaining = self._remaining_tasks(data, specs)
        velocity = _mean(self._tasks_window(data, now, self._config.rolling_weeks))
        if remaining == 0 or velocity == 0:
            return None
        return now + timedelta(days=math.ceil(remaining / velocity * 7))

    @staticmethod
    def _days_remaining(now: datetime, projected: datetime | None) -> int:
        if projected is None:
            return 0
        return days_between(now, projected)

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    def get_daily_task_counts(self, days: int) -> list[DailyTaskCount]:
        """Per-day counts for the last *days* days, oldest first, zero-filled."""
        return self._daily_window(self._require_data(), self._now(), days)

    @staticmethod
    def _daily_window(data: VelocityData, now: datetime, days: int) -> list[DailyTaskCount]:
        result = []
        for key in recent_date_keys(now, days):
            existing = data.daily_task_counts.get(key)
            result.append(existing.model_copy() if existing is not None else DailyTaskCount(day=key))
        return result

    def get_recent_task_events(self, limit: int) -> list[TaskCompletionEvent]:
        """Latest *limit* task completions, newest first."""
        if limit <= 0:
            return []
        events = self._require_data().task_completion_events[-limit:]
        return [event.model_copy() for event in reversed(events)]

    def get_spec_lifecycle_events(self) -> list[SpecLifecycleEvent]:
        return [event.model_copy() for event in self._require_data().spec_lifecycle_events]

    @property
    def data(self) -> VelocityData:
        """Deep copy of the current snapshot."""
        return self._require_data().model_copy(deep=True)

    # ------------------------------------------------------------------
    # Aggregate view
    # ------------------------------------------------------------------

    def calculate_metrics(self, specs: Sequence[SpecProgress] | None = None) -> VelocityMetrics:
        """Compute every derived metric against a single observation time.

        Current-week fields (``current_week_tasks``, ``required_vs_optional``,
        ``day_of_week_velocity``) cover the clock's ISO week only.
        """
        data = self._require_data()
        now = self._now()
        config = self._config

        bucket = data.weekly_tasks.get(week_key_of(now))
        current, last = self._current_and_last(data, now)
        consistency_window = self._tasks_window(data, now, config.consistency_weeks)
        specs_window = self._specs_window(data, now, config.consistency_weeks)
        consistency = _consistency_score(consistency_window, idle_score=100)
        specs_consistency = _consistency_score(specs_window, idle_score=0)
        projected = self._projected_completion(data, now, specs)

        metrics = VelocityMetrics(
            current_week_tasks=current,
            last_week_tasks=last,
            tasks_per_week=self._tasks_window(data, now, config.history_weeks),
            velocity_trend=self._trend(current, last),
            average_velocity=_mean(self._tasks_window(data, now, config.rolling_weeks)),
            consistency_score=consistency,
            consistency_rating=ConsistencyRating.from_score(consistency),
            required_vs_optional=RequiredVsOptional(
                required=bucket.required if bucket is not None else 0,
                optional=bucket.optional if bucket is not None else 0,
            ),
            day_of_week_velocity=(bucket.day_of_week.model_copy() if bucket is not None else DayOfWeekCounts()),
            specs_per_week=self._specs_window(data, now, config.history_weeks),
            current_week_specs=self._specs_window(data, now, 1)[0],
            average_specs=_mean(self._specs_window(data, now, config.rolling_weeks)),
            specs_consistency_score=specs_consistency,
            specs_consistency_rating=ConsistencyRating.from_score(specs_consistency),
            average_time_to_complete=self._avg_time_to_complete(data),
            time_distribution=self._time_distribution(data),
            remaining_tasks=self._remaining_tasks(data, specs),
            projected_completion_date=projected,
            days_remaining=self._days_remaining(now, projected),
            daily_activity=self._daily_window(data, now, config.daily_activity_days),
            recent_events=self.get_recent_task_events(config.event_limit),
            spec_timelines=self._spec_timelines(data),
        )
        _logger.debug(
            "Metrics calculated current_week=%d last_week=%d average=%.1f remaining=%d",
            metrics.current_week_tasks,
            metrics.last_week_tasks,
            metrics.average_velocity,
            metrics.remaining_tasks,
        )
        return metrics
