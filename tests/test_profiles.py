from __future__ import annotations

import json
from pathlib import Path

import pytest

from specvelocity.exceptions import (
    ProfileError,
    ProfileExistsError,
    ProfileNotFoundError,
    ProfileValidationError,
)
from specvelocity.models.profile import ExecutionProfile
from specvelocity.profiles import (
    PROFILES_FILE_VERSION,
    ProfileStore,
    built_in_profiles,
    render_template,
    validate_profile,
)


def _profile(**overrides: object) -> ExecutionProfile:
    fields: dict[str, object] = {
        "id": "quick-pass",
        "name": "Quick pass",
        "prompt_template": "Run {{specName}} in {{workspaceFolder}}",
    }
    fields.update(overrides)
    return ExecutionProfile(**fields)  # type: ignore[arg-type]


@pytest.fixture
def store(tmp_path: Path) -> ProfileStore:
    return ProfileStore(tmp_path / "profiles.json")


class TestValidation:
    def test_valid_profile(self) -> None:
        result = validate_profile(_profile())
        assert result.valid
        assert result.errors == []

    def test_built_ins_are_valid(self) -> None:
        assert all(validate_profile(profile).valid for profile in built_in_profiles())

    def test_collects_every_error_in_field_order(self) -> None:
        result = validate_profile(_profile(id="Not Kebab", name="", prompt_template=" ", icon=""))
        assert not result.valid
        assert result.errors == [
            "Profile ID must be in kebab-case format (lowercase letters, numbers, and hyphens only)",
            "Profile name is required and must be a non-empty string",
            "Profile promptTemplate is required and must be a non-empty string",
            "Profile icon must be a non-empty string if provided",
        ]

    def test_length_limits(self) -> None:
        result = validate_profile(_profile(id="a" * 51, name="n" * 101, prompt_template="t" * 10_001))
        assert result.errors == [
            "Profile ID must be 50 characters or less",
            "Profile name must be 100 characters or less",
            "Profile promptTemplate must be 10,000 characters or less",
        ]

    def test_missing_id(self) -> None:
        result = validate_profile(_profile(id=""))
        assert result.errors == ["Profile ID is required and must be a non-empty string"]

    def test_timestamps_must_be_iso(self) -> None:
        result = validate_profile(_profile(created_at="yesterday", updated_at="2026-02-06T10:00:00Z"))
        assert result.errors == ["Profile createdAt must be a valid ISO 8601 timestamp"]

    @pytest.mark.parametrize("profile_id", ["mvp", "a1", "my-profile-2"])
    def test_kebab_case_ids(self, profile_id: str) -> None:
        assert validate_profile(_profile(id=profile_id)).valid

    @pytest.mark.parametrize("profile_id", ["-a", "a-", "a--b", "A", "a_b"])
    def test_rejected_ids(self, profile_id: str) -> None:
        assert not validate_profile(_profile(id=profile_id)).valid


class TestRenderTemplate:
    def test_substitutes_known_placeholders(self) -> None:
        profile = _profile(prompt_template="Spec {{ specName }} has {{remainingTasks}} left")
        assert render_template(profile, {"specName": "auth", "remainingTasks": 3}) == "Spec auth has 3 left"

    def test_unknown_placeholders_are_kept(self) -> None:
        profile = _profile(prompt_template="{{specName}} at {{specPath}}")
        assert render_template(profile, {"specName": "auth"}) == "auth at {{specPath}}"


class TestProfileStore:
    @pytest.mark.asyncio
    async def test_built_ins_without_file(self, store: ProfileStore) -> None:
        profiles = await store.load_profiles()
        assert [profile.id for profile in profiles] == ["mvp", "full"]
        assert all(profile.is_built_in for profile in profiles)
        assert not store.path.exists()

    @pytest.mark.asyncio
    async def test_create_and_reload(self, store: ProfileStore) -> None:
        created = await store.create_profile(_profile(is_built_in=True))

        assert created.is_built_in is False
        assert created.created_at is not None
        assert created.created_at == created.updated_at

        document = json.loads(store.path.read_text(encoding="utf-8"))
        assert document["version"] == PROFILES_FILE_VERSION
        assert document["profiles"][0]["promptTemplate"] == created.prompt_template

        reloaded = await ProfileStore(store.path).get_profile("quick-pass")
        assert reloaded == created

    @pytest.mark.asyncio
    async def test_create_invalid_profile(self, store: ProfileStore) -> None:
        with pytest.raises(ProfileValidationError) as exc_info:
            await store.create_profile(_profile(id="Bad Id"))
        assert not exc_info.value.result.valid
        assert len(exc_info.value.result.errors) == 1

    @pytest.mark.asyncio
    async def test_create_duplicate(self, store: ProfileStore) -> None:
        await store.create_profile(_profile())
        with pytest.raises(ProfileExistsError, match='Profile with ID "quick-pass" already exists'):
            await store.create_profile(_profile())
        with pytest.raises(ProfileExistsError):
            await store.create_profile(_profile(id="mvp"))

    @pytest.mark.asyncio
    async def test_update_profile(self, store: ProfileStore) -> None:
        created = await store.create_profile(_profile())
        updated = await store.update_profile("quick-pass", name="Renamed", id="other", is_built_in=True)

        assert updated.id == "quick-pass"
        assert updated.name == "Renamed"
        assert updated.is_built_in is False
        assert updated.created_at == created.created_at
        assert (await store.get_profile("quick-pass")) == updated
        assert await store.get_profile("other") is None

    @pytest.mark.asyncio
    async def test_update_rejects_invalid_changes(self, store: ProfileStore) -> None:
        await store.create_profile(_profile())
        with pytest.raises(ProfileValidationError):
            await store.update_profile("quick-pass", name="")
        with pytest.raises(ProfileValidationError):
            await store.update_profile("quick-pass", metadata="not a mapping")
        assert (await store.get_profile("quick-pass")).name == "Quick pass"  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_update_missing_profile(self, store: ProfileStore) -> None:
        with pytest.raises(ProfileNotFoundError):
            await store.update_profile("nope", name="x")

    @pytest.mark.asyncio
    async def test_customised_built_in_replaces_default(self, store: ProfileStore) -> None:
        await store.update_profile("mvp", name="My MVP")

        profiles = {profile.id: profile for profile in await store.load_profiles()}
        assert set(profiles) == {"mvp", "full"}
        assert profiles["mvp"].name == "My MVP"
        assert profiles["mvp"].is_built_in is True

    @pytest.mark.asyncio
    async def test_delete_profile(self, store: ProfileStore) -> None:
        await store.create_profile(_profile())
        await store.delete_profile("quick-pass")
        assert await store.get_profile("quick-pass") is None

        with pytest.raises(ProfileNotFoundError):
            await store.delete_profile("quick-pass")

    @pytest.mark.asyncio
    async def test_built_ins_cannot_be_deleted(self, store: ProfileStore) -> None:
        with pytest.raises(ProfileError, match='Cannot delete built-in profile "full"'):
            await store.delete_profile("full")

    @pytest.mark.asyncio
    async def test_reset_built_in(self, store: ProfileStore) -> None:
        customised = await store.update_profile("mvp", name="My MVP", prompt_template="custom")

        restored = await store.reset_built_in_profile("mvp")

        assert restored.name == "MVP (Required Tasks)"
        assert restored.prompt_template != "custom"
        assert restored.created_at == customised.created_at
        assert (await store.get_profile("mvp")) == restored

    @pytest.mark.asyncio
    async def test_reset_uncustomised_built_in_returns_default(self, store: ProfileStore) -> None:
        restored = await store.reset_built_in_profile("full")
        assert restored.name == "Full (All Tasks)"
        assert not store.path.exists()

    @pytest.mark.asyncio
    async def test_reset_unknown_built_in(self, store: ProfileStore) -> None:
        await store.create_profile(_profile())
        with pytest.raises(ProfileNotFoundError):
            await store.reset_built_in_profile("quick-pass")

    @pytest.mark.asyncio
    async def test_invalid_entries_are_skipped(self, store: ProfileStore) -> None:
        store.path.write_text(
            json.dumps(
                {
                    "version": "1.0",
                    "profiles": [
                        5,
                        {"id": "Bad Id", "name": "x", "promptTemplate": "y"},
                        {"id": "good", "name": "Good", "promptTemplate": "y"},
                    ],
                }
            ),
            encoding="utf-8",
        )
        profiles = await store.load_profiles()
        assert [profile.id for profile in profiles] == ["mvp", "full", "good"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["{broken", '{"version": "1.0"}', "[]"])
    async def test_unreadable_file(self, store: ProfileStore, content: str) -> None:
        store.path.write_text(content, encoding="utf-8")
        with pytest.raises(ProfileError):
            await store.load_profiles()
