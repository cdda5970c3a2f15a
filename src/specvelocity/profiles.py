"""Execution profile store.

Profiles live in a single JSON file (``{"version": ..., "profiles": [...]}``)
next to the workspace state. Two built-in profiles are always available;
the file may customise them and add any number of user profiles.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from specvelocity.exceptions import (
    ProfileError,
    ProfileExistsError,
    ProfileNotFoundError,
    ProfileValidationError,
)
from specvelocity.models.profile import ExecutionProfile, ValidationResult
from specvelocity.state.store import atomic_write_text

_logger = logging.getLogger(__name__)

PROFILES_FILE_VERSION = "1.0"
PROFILE_ID_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
MAX_ID_LENGTH = 50
MAX_NAME_LENGTH = 100
MAX_TEMPLATE_LENGTH = 10_000

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")

_MVP_TEMPLATE = """Execute the spec "{{specName}}" located at {{specPath}}.

Focus on required tasks only (skip optional tasks marked with *).

Workspace: {{workspaceFolder}}
Total tasks: {{totalTasks}}
Completed: {{completedTasks}}
Remaining: {{remainingTasks}}

Please execute all remaining required tasks in order."""

_FULL_TEMPLATE = """Execute the spec "{{specName}}" located at {{specPath}}.

Execute ALL tasks including optional ones.

Workspace: {{workspaceFolder}}
Total tasks: {{totalTasks}}
Completed: {{completedTasks}}
Remaining: {{remainingTasks}}

Please execute all remaining tasks in order, including optional tasks."""


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def built_in_profiles() -> list[ExecutionProfile]:
    """Fresh copies of the default built-in profiles."""
    now = _now_iso()
    return [
        ExecutionProfile(
            id="mvp",
            name="MVP (Required Tasks)",
            icon="rocket",
            description="Execute only required tasks to complete the minimum viable product",
            prompt_template=_MVP_TEMPLATE,
            is_built_in=True,
            created_at=now,
            updated_at=now,
        ),
        ExecutionProfile(
            id="full",
            name="Full (All Tasks)",
            icon="checklist",
            description="Execute all tasks including optional ones for complete implementation",
            prompt_template=_FULL_TEMPLATE,
            is_built_in=True,
            created_at=now,
            updated_at=now,
        ),
    ]


def _is_iso_timestamp(value: str) -> bool:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def validate_profile(profile: ExecutionProfile) -> ValidationResult:
    """Check every profile field and collect all problems, in field order."""
    errors: list[str] = []

    if not profile.id.strip():
        errors.append("Profile ID is required and must be a non-empty string")
    else:
        if not PROFILE_ID_PATTERN.match(profile.id):
            errors.append(
                "Profile ID must be in kebab-case format (lowercase letters, numbers, and hyphens only)"
            )
        if len(profile.id) > MAX_ID_LENGTH:
            errors.append(f"Profile ID must be {MAX_ID_LENGTH} characters or less")

    if not profile.name.strip():
        errors.append("Profile name is required and must be a non-empty string")
    elif len(profile.name) > MAX_NAME_LENGTH:
        errors.append(f"Profile name must be {MAX_NAME_LENGTH} characters or less")

    if not profile.prompt_template.strip():
        errors.append("Profile promptTemplate is required and must be a non-empty string")
    elif len(profile.prompt_template) > MAX_TEMPLATE_LENGTH:
        errors.append(f"Profile promptTemplate must be {MAX_TEMPLATE_LENGTH:,} characters or less")

    if profile.icon is not None and not profile.icon.strip():
        errors.append("Profile icon must be a non-empty string if provided")

    for field_name, value in (("createdAt", profile.created_at), ("updatedAt", profile.updated_at)):
        if value is not None and not _is_iso_timestamp(value):
            errors.append(f"Profile {field_name} must be a valid ISO 8601 timestamp")

    return ValidationResult(valid=not errors, errors=errors)


def render_template(profile: ExecutionProfile, variables: Mapping[str, Any]) -> str:
    """Substitute ``{{name}}`` placeholders; unknown names are left as-is."""

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        return str(variables[name])

    return _PLACEHOLDER.sub(_replace, profile.prompt_template)


class ProfileStore:
    """CRUD over execution profiles stored in one JSON file.

    Parameters
    ----------
    profiles_path : Path
        Location of the profiles file; created on first write.
    """

    def __init__(self, profiles_path: Path | str) -> None:
        self._path = Path(profiles_path)

    @property
    def path(self) -> Path:
        return self._path

    validate_profile = staticmethod(validate_profile)
    render_template = staticmethod(render_template)

    # ------------------------------------------------------------------
    # File access
    # ------------------------------------------------------------------

    def _read_file(self) -> list[ExecutionProfile]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise ProfileError(f"Could not read profiles file {self._path}: {exc}") from exc

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ProfileError(f"Profiles file {self._path} is not valid JSON: {exc}") from exc
        entries = document.get("profiles") if isinstance(document, dict) else None
        if not isinstance(entries, list):
            raise ProfileError(f"Profiles file {self._path} has no 'profiles' list")

        profiles: list[ExecutionProfile] = []
        for index, entry in enumerate(entries):
            try:
                profile = ExecutionProfile.model_validate(entry)
            except ValidationError as exc:
                _logger.warning("Skipping malformed profile at index %d: %s", index, exc)
                continue
            result = validate_profile(profile)
            if not result.valid:
                _logger.warning("Skipping invalid profile at index %d: %s", index, ", ".join(result.errors))
                continue
            profiles.append(profile)
        return profiles

    def _write_file(self, profiles: list[ExecutionProfile]) -> None:
        document = {
            "version": PROFILES_FILE_VERSION,
            "profiles": [profile.model_dump(by_alias=True, exclude_none=True) for profile in profiles],
        }
        try:
            atomic_write_text(self._path, json.dumps(document, indent=2))
        except OSError as exc:
            raise ProfileError(f"Could not write profiles file {self._path}: {exc}") from exc

    async def _load_file(self) -> list[ExecutionProfile]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_file)

    async def _save_file(self, profiles: list[ExecutionProfile]) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_file, profiles)
        _logger.debug("Saved %d profiles to %s", len(profiles), self._path)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def load_profiles(self) -> list[ExecutionProfile]:
        """Built-in profiles (possibly customised) followed by user profiles."""
        stored = await self._load_file()
        stored_ids = {profile.id for profile in stored}
        defaults = [profile for profile in built_in_profiles() if profile.id not in stored_ids]
        return defaults + stored

    async def get_profile(self, profile_id: str) -> ExecutionProfile | None:
        for profile in await self.load_profiles():
            if profile.id == profile_id:
                return profile
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_profile(self, profile: ExecutionProfile) -> ExecutionProfile:
        """Validate and add a user profile.

        Raises
        ------
        ProfileValidationError
            When the profile fails validation (see ``error.result``).
        ProfileExistsError
            When the id is already taken (including built-in ids).
        """
        result = validate_profile(profile)
        if not result.valid:
            raise ProfileValidationError(
                f"Profile validation failed: {', '.join(result.errors)}",
                result=result,
            )

        if await self.get_profile(profile.id) is not None:
            raise ProfileExistsError(f'Profile with ID "{profile.id}" already exists')

        now = _now_iso()
        created = profile.model_copy(update={"is_built_in": False, "created_at": now, "updated_at": now})
        stored = await self._load_file()
        stored.append(created)
        await self._save_file(stored)
        _logger.debug("Created profile %s", created.id)
        return created

    async def update_profile(self, profile_id: str, **changes: Any) -> ExecutionProfile:
        """Apply field *changes* to an existing profile (id and built-in flag are fixed)."""
        current = await self.get_profile(profile_id)
        if current is None:
            raise ProfileNotFoundError(f'Profile with ID "{profile_id}" not found')

        for fixed in ("id", "is_built_in", "created_at"):
            changes.pop(fixed, None)
        try:
            updated = ExecutionProfile.model_validate(
                {**current.model_dump(), **changes, "updated_at": _now_iso()}
            )
        except ValidationError as exc:
            errors = [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()]
            raise ProfileValidationError(
                f"Profile validation failed: {', '.join(errors)}",
                result=ValidationResult(valid=False, errors=errors),
            ) from exc
        result = validate_profile(updated)
        if not result.valid:
            raise ProfileValidationError(
                f"Profile validation failed: {', '.join(result.errors)}",
                result=result,
            )

        stored = await self._load_file()
        await self._save_file(self._replace(stored, updated))
        _logger.debug("Updated profile %s", profile_id)
        return updated

    async def delete_profile(self, profile_id: str) -> None:
        profile = await self.get_profile(profile_id)
        if profile is None:
            raise ProfileNotFoundError(f'Profile with ID "{profile_id}" not found')
        if profile.is_built_in:
            raise ProfileError(f'Cannot delete built-in profile "{profile_id}"')

        stored = await self._load_file()
        await self._save_file([item for item in stored if item.id != profile_id])
        _logger.debug("Deleted profile %s", profile_id)

    async def reset_built_in_profile(self, profile_id: str) -> ExecutionProfile:
        """Restore a built-in profile's defaults, keeping its creation date."""
        default = next((item for item in built_in_profiles() if item.id == profile_id), None)
        if default is None:
            raise ProfileNotFoundError(f'No built-in profile found with ID "{profile_id}"')

        stored = await self._load_file()
        current = next((item for item in stored if item.id == profile_id), None)
        if current is None:
            return default

        restored = default.model_copy(update={"created_at": current.created_at, "updated_at": _now_iso()})
        await self._save_file(self._replace(stored, restored))
        _logger.debug("Reset built-in profile %s", profile_id)
        return restored

    @staticmethod
    def _replace(profiles: list[ExecutionProfile], profile: ExecutionProfile) -> list[ExecutionProfile]:
        replaced = [profile if item.id == profile.id else item for item in profiles]
        if all(item.id != profile.id for item in profiles):
            replaced.append(profile)
        return replaced
