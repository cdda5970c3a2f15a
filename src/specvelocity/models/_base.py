"""Base models shared by the persisted state and the derived views.

Every persisted model inherits from :class:`VelocityBaseModel` which
provides:

* ``alias_generator=to_camel`` so the JSON document uses camelCase keys
  (``weeklyTasks``, ``firstTaskDate``) while Python code stays snake_case.
* ``populate_by_name=True`` so both spellings validate.
* ``validate_assignment=True`` so in-place mutation by the aggregator is
  checked against the same field constraints as loading.

Read-only views inherit from :class:`VelocityViewModel`, the frozen
variant.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

from specvelocity.bucketing import to_utc

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_timestamp(value: Any) -> Any:
    """Convert epoch numbers (seconds **or** milliseconds) to UTC datetimes.

    Anything else is left to pydantic's own datetime parsing.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    return value


UtcDatetime = Annotated[datetime, BeforeValidator(parse_timestamp), AfterValidator(to_utc)]
"""Datetime accepting ISO strings or epoch seconds/ms, always stored in UTC."""


class VelocityBaseModel(BaseModel):
    """Base for mutable, persisted state models."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        validate_assignment=True,
    )


class VelocityViewModel(BaseModel):
    """Base for frozen, derived read-only views."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )
