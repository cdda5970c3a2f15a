"""Execution profile models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ExecutionProfile(BaseModel):
    """A named prompt template used to execute a spec.

    Fields are intentionally unconstrained here: the profile store
    validates them and reports every problem at once via
    :class:`ValidationResult` instead of failing on the first one.

    Parameters
    ----------
    id : str
        kebab-case identifier (``mvp``, ``full``, ``my-profile``).
    name : str
        Display name.
    prompt_template : str
        Template body; ``{{variable}}`` placeholders are substituted on render.
    icon : str or None
        Optional icon identifier.
    description : str or None
        Optional free-form description.
    is_built_in : bool
        Built-in profiles cannot be deleted, only reset.
    created_at, updated_at : str or None
        ISO 8601 timestamps.
    metadata : dict
        Free-form caller data (e.g. owning workspace folder).
    """

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str = ""
    name: str = ""
    prompt_template: str = ""
    icon: str | None = None
    description: str | None = None
    is_built_in: bool = False
    created_at: str | None = None
    updated_at: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ValidationResult(BaseModel):
    """Outcome of profile validation; ``errors`` is empty when ``valid``."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    errors: list[str] = Field(default_factory=list)
