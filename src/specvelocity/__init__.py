"""specvelocity - Velocity tracking for spec and task completions."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("specvelocity")
except PackageNotFoundError:
    __version__ = "0+local"
from specvelocity.aggregator import VelocityAggregator
from specvelocity.bucketing import DayOfWeek, day_of_week_of, week_key_of
from specvelocity.config import VelocityConfig
from specvelocity.exceptions import (
    PersistenceError,
    PreconditionError,
    ProfileError,
    ProfileExistsError,
    ProfileNotFoundError,
    ProfileValidationError,
    VelocityConfigError,
    VelocityError,
)
from specvelocity.models import (
    ConsistencyRating,
    DailyTaskCount,
    DayOfWeekCounts,
    ExecutionProfile,
    LifecycleEventType,
    RequiredVsOptional,
    SpecActivityData,
    SpecLifecycleEvent,
    SpecProgress,
    SpecTimeline,
    TaskCompletionEvent,
    TimeDistribution,
    ValidationResult,
    VelocityData,
    VelocityMetrics,
    WeeklyTaskData,
)
from specvelocity.profiles import ProfileStore
from specvelocity.state import InMemoryStateStore, JsonFileStateStore, VelocityStateStore

__all__ = [
    "__version__",
    "ConsistencyRating",
    "DailyTaskCount",
    "DayOfWeek",
    "DayOfWeekCounts",
    "ExecutionProfile",
    "InMemoryStateStore",
    "JsonFileStateStore",
    "LifecycleEventType",
    "PersistenceError",
    "PreconditionError",
    "ProfileError",
    "ProfileExistsError",
    "ProfileNotFoundError",
    "ProfileStore",
    "ProfileValidationError",
    "RequiredVsOptional",
    "SpecActivityData",
    "SpecLifecycleEvent",
    "SpecProgress",
    "SpecTimeline",
    "TaskCompletionEvent",
    "TimeDistribution",
    "ValidationResult",
    "VelocityAggregator",
    "VelocityConfig",
    "VelocityConfigError",
    "VelocityData",
    "VelocityError",
    "VelocityMetrics",
    "VelocityStateStore",
    "WeeklyTaskData",
    "day_of_week_of",
    "week_key_of",
]
