"""Engine configuration for specvelocity."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from specvelocity.exceptions import VelocityConfigError


def _env_int(env: Mapping[str, str], key: str) -> int | None:
    value = env.get(key)
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError as exc:
        raise VelocityConfigError(f"{key} must be an integer, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class VelocityConfig:
    """Aggregator and store configuration.

    Parameters
    ----------
    state_dir : Path
        Directory holding the workspace-scoped state documents.
    state_key : str
        Key (file stem) under which the velocity snapshot is stored.
    history_weeks : int
        Length of the ``tasks_per_week``/``specs_per_week`` windows
        reported by ``calculate_metrics``.
    rolling_weeks : int
        Window used for rolling averages and completion projection.
    consistency_weeks : int
        Window used for consistency scores.
    daily_retention_days : int
        Daily heatmap counts older than this are pruned on each record.
    daily_activity_days : int
        Number of days reported as ``daily_activity``.
    event_limit : int
        Maximum number of task-completion events kept for the activity stream.
    """

    state_dir: Path = Path(".specvelocity")
    state_key: str = "velocityData"
    history_weeks: int = 12
    rolling_weeks: int = 4
    consistency_weeks: int = 8
    daily_retention_days: int = 90
    daily_activity_days: int = 84
    event_limit: int = 100

    @classmethod
    def from_env(cls, **overrides: Any) -> VelocityConfig:
        """Create configuration from ``SPECVELOCITY_*`` environment variables.

        Explicit keyword arguments override environment values.

        Raises
        ------
        VelocityConfigError
            When a numeric variable cannot be parsed.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        state_dir = env.get("SPECVELOCITY_STATE_DIR")
        if state_dir:
            config_kwargs["state_dir"] = Path(state_dir)
        state_key = env.get("SPECVELOCITY_STATE_KEY")
        if state_key:
            config_kwargs["state_key"] = state_key

        _ENV_INT_MAP = {
            "SPECVELOCITY_HISTORY_WEEKS": "history_weeks",
            "SPECVELOCITY_ROLLING_WEEKS": "rolling_weeks",
            "SPECVELOCITY_CONSISTENCY_WEEKS": "consistency_weeks",
            "SPECVELOCITY_DAILY_RETENTION_DAYS": "daily_retention_days",
            "SPECVELOCITY_DAILY_ACTIVITY_DAYS": "daily_activity_days",
            "SPECVELOCITY_EVENT_LIMIT": "event_limit",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            if field_name in overrides:
                continue
            value = _env_int(env, env_key)
            if value is not None:
                config_kwargs[field_name] = value

        if "state_dir" in overrides:
            overrides["state_dir"] = Path(overrides["state_dir"])
        config_kwargs.update(overrides)

        return cls(**config_kwargs)
