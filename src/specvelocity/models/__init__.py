"""Data models for velocity state, derived metrics and execution profiles."""

from specvelocity.models._base import UtcDatetime, VelocityBaseModel, VelocityViewModel, parse_timestamp
from specvelocity.models.metrics import (
    ConsistencyRating,
    RequiredVsOptional,
    SpecProgress,
    SpecTimeline,
    TimeDistribution,
    VelocityMetrics,
)
from specvelocity.models.profile import ExecutionProfile, ValidationResult
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

__all__ = [
    "ConsistencyRating",
    "DailyTaskCount",
    "DayOfWeekCounts",
    "ExecutionProfile",
    "LifecycleEventType",
    "RequiredVsOptional",
    "SpecActivityData",
    "SpecLifecycleEvent",
    "SpecProgress",
    "SpecTimeline",
    "TaskCompletionEvent",
    "TimeDistribution",
    "UtcDatetime",
    "ValidationResult",
    "VelocityBaseModel",
    "VelocityData",
    "VelocityMetrics",
    "VelocityViewModel",
    "WeeklyTaskData",
    "parse_timestamp",
]
