"""Custom exception hierarchy for specvelocity."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from specvelocity.models.profile import ValidationResult


class VelocityError(Exception):
    """Base exception for all specvelocity errors."""


class VelocityConfigError(VelocityError):
    """Invalid configuration value (usually from the environment)."""


class PersistenceError(VelocityError):
    """State store read or write failed (I/O, serialization, corrupt document).

    The aggregator raises this *after* the in-memory mutation has been
    applied, so callers can retry with :meth:`VelocityAggregator.persist`
    without replaying the event.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class PreconditionError(VelocityError):
    """Operation invoked before ``initialize()`` completed or after ``close()``."""


class ProfileError(VelocityError):
    """Profile store operation failed."""


class ProfileValidationError(ProfileError):
    """Profile failed validation.

    The structured result is available as ``result`` so UIs can list
    every problem rather than just the first one.
    """

    def __init__(self, message: str, *, result: ValidationResult) -> None:
        self.result = result
        super().__init__(message)


class ProfileNotFoundError(ProfileError):
    """No profile with the requested id."""


class ProfileExistsError(ProfileError):
    """A profile with the same id already exists."""
