from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from specvelocity.bucketing import DayOfWeek
from specvelocity.exceptions import PersistenceError
from specvelocity.models.velocity import (
    DailyTaskCount,
    SpecActivityData,
    TaskCompletionEvent,
    VelocityData,
    WeeklyTaskData,
)
from specvelocity.state.store import (
    InMemoryStateStore,
    JsonFileStateStore,
    VelocityStateStore,
    atomic_write_text,
    deserialize_velocity_data,
    serialize_velocity_data,
)


def _dt() -> datetime:
    return datetime(2026, 2, 4, 14, 30, tzinfo=UTC)


def _sample() -> VelocityData:
    week = WeeklyTaskData(week_key="2026-W06")
    week.record(DayOfWeek.WEDNESDAY, is_required=True)
    return VelocityData(
        weekly_tasks={"2026-W06": week},
        spec_activity={
            "auth-flow": SpecActivityData(
                first_task_date=_dt(),
                last_task_date=_dt(),
                total_tasks=4,
                completed_tasks=1,
            )
        },
        daily_task_counts={"2026-02-04": DailyTaskCount(day="2026-02-04", total=1, required=1)},
        task_completion_events=[
            TaskCompletionEvent(timestamp=_dt(), spec_id="auth-flow", task_id="1.1", is_required=True)
        ],
    )


def test_stores_satisfy_protocol(tmp_path: Path) -> None:
    assert isinstance(InMemoryStateStore(), VelocityStateStore)
    assert isinstance(JsonFileStateStore(tmp_path), VelocityStateStore)


@pytest.mark.asyncio
async def test_in_memory_round_trip_returns_fresh_copy() -> None:
    store = InMemoryStateStore()
    assert await store.get_velocity_data() is None

    data = _sample()
    await store.save_velocity_data(data)
    loaded = await store.get_velocity_data()

    assert loaded == data
    assert loaded is not data
    data.weekly_tasks["2026-W06"].total = 99
    assert (await store.get_velocity_data()).weekly_tasks["2026-W06"].total == 1  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_in_memory_keys_are_isolated() -> None:
    store = InMemoryStateStore(key="workspace-a")
    await store.save_velocity_data(_sample())
    assert store.key == "workspace-a"
    assert json.loads(store.get_document() or "{}")["weeklyTasks"][0]["weekKey"] == "2026-W06"


@pytest.mark.asyncio
async def test_file_store_round_trip(tmp_path: Path) -> None:
    store = JsonFileStateStore(tmp_path / "state")
    assert await store.get_velocity_data() is None

    data = _sample()
    await store.save_velocity_data(data)

    assert store.path == tmp_path / "state" / "velocityData.json"
    assert await JsonFileStateStore(tmp_path / "state").get_velocity_data() == data


@pytest.mark.asyncio
async def test_file_store_overwrites_and_leaves_no_temp_files(tmp_path: Path) -> None:
    store = JsonFileStateStore(tmp_path, key="custom")
    await store.save_velocity_data(VelocityData())
    await store.save_velocity_data(_sample())

    assert sorted(p.name for p in tmp_path.iterdir()) == ["custom.json"]
    assert (await store.get_velocity_data()) == _sample()


@pytest.mark.asyncio
async def test_file_store_corrupt_document_raises(tmp_path: Path) -> None:
    store = JsonFileStateStore(tmp_path)
    store.path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceError) as exc_info:
        await store.get_velocity_data()
    assert exc_info.value.key == "velocityData"


@pytest.mark.asyncio
async def test_file_store_invalid_week_key_raises(tmp_path: Path) -> None:
    store = JsonFileStateStore(tmp_path)
    store.path.write_text(json.dumps({"weeklyTasks": [{"weekKey": "2026-W99", "total": 1}]}), encoding="utf-8")

    with pytest.raises(PersistenceError):
        await store.get_velocity_data()


@pytest.mark.asyncio
async def test_file_store_write_failure_raises(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    store = JsonFileStateStore(blocker)

    with pytest.raises(PersistenceError):
        await store.save_velocity_data(_sample())


def test_serialized_document_uses_camel_case_and_sorted_weeks() -> None:
    data = VelocityData(
        weekly_tasks={
            "2026-W06": WeeklyTaskData(week_key="2026-W06"),
            "2025-W52": WeeklyTaskData(week_key="2025-W52"),
            "2026-W01": WeeklyTaskData(week_key="2026-W01"),
        }
    )
    document = json.loads(serialize_velocity_data(data))

    assert set(document) == {
        "weeklyTasks",
        "specActivity",
        "dailyTaskCounts",
        "taskCompletionEvents",
        "specLifecycleEvents",
    }
    assert [week["weekKey"] for week in document["weeklyTasks"]] == ["2025-W52", "2026-W01", "2026-W06"]
    assert document["weeklyTasks"][0]["weekStart"] == "2025-12-22"
    assert document["weeklyTasks"][0]["dayOfWeek"]["monday"] == 0


def test_deserialize_accepts_missing_sections() -> None:
    data = deserialize_velocity_data("{}")
    assert data == VelocityData()


def test_deserialize_rejects_duplicate_weeks() -> None:
    raw = json.dumps({"weeklyTasks": [{"weekKey": "2026-W06"}, {"weekKey": "2026-W06"}]})
    with pytest.raises(PersistenceError):
        deserialize_velocity_data(raw, key="dup")


@pytest.mark.parametrize("entry", [1, "2026-02-01", None, {"total": 1}])
def test_deserialize_rejects_malformed_daily_counts(entry: object) -> None:
    raw = json.dumps({"dailyTaskCounts": [entry]})
    with pytest.raises(PersistenceError) as exc_info:
        deserialize_velocity_data(raw, key="daily")
    assert exc_info.value.key == "daily"


def test_atomic_write_creates_parent_directories(tmp_path: Path) -> None:
    target = tmp_path / "a" / "b" / "doc.json"
    atomic_write_text(target, '{"x": 1}')
    assert json.loads(target.read_text(encoding="utf-8")) == {"x": 1}
    assert [p.name for p in target.parent.iterdir()] == ["doc.json"]
