"""State/store layer.

Stores persist the single velocity snapshot owned by an aggregator.
Only :class:`~specvelocity.aggregator.VelocityAggregator` mutates the
snapshot; stores just read and write whole documents.
"""

from specvelocity.state.store import (
    DEFAULT_STATE_KEY,
    InMemoryStateStore,
    JsonFileStateStore,
    VelocityStateStore,
    deserialize_velocity_data,
    serialize_velocity_data,
)

__all__ = [
    "DEFAULT_STATE_KEY",
    "InMemoryStateStore",
    "JsonFileStateStore",
    "VelocityStateStore",
    "deserialize_velocity_data",
    "serialize_velocity_data",
]
