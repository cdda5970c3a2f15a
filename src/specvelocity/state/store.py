"""State stores for the velocity snapshot.

A store persists exactly one :class:`VelocityData` document per key.
Writes are full snapshots and must be atomic from the reader's point of
view; reads return ``None`` when nothing was stored yet. Every failure
is raised as :class:`PersistenceError` with the original exception
chained.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from specvelocity.exceptions import PersistenceError
from specvelocity.models.velocity import VelocityData

_logger = logging.getLogger(__name__)

DEFAULT_STATE_KEY = "velocityData"


def atomic_write_text(target: Path, raw: str) -> None:
    """Write *raw* to *target* via a temp file in the same directory and ``os.replace``.

    Readers see either the previous document or the new one, never a
    partial write.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(raw)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def serialize_velocity_data(data: VelocityData) -> str:
    """Render the snapshot as the persisted camelCase JSON document."""
    return data.model_dump_json(by_alias=True, indent=2)


def deserialize_velocity_data(raw: str | bytes, *, key: str = DEFAULT_STATE_KEY) -> VelocityData:
    """Parse a persisted document.

    Raises
    ------
    PersistenceError
        When the document is not valid JSON or does not match the model.
    """
    try:
        return VelocityData.model_validate_json(raw)
    except ValidationError as exc:
        raise PersistenceError(f"Corrupt velocity data under {key!r}: {exc}", key=key) from exc


@runtime_checkable
class VelocityStateStore(Protocol):
    """Async persistence for the velocity snapshot."""

    async def get_velocity_data(self) -> VelocityData | None: ...

    async def save_velocity_data(self, data: VelocityData) -> None: ...


class InMemoryStateStore:
    """Store keeping serialized documents in a dict.

    Documents go through the same JSON encoding as the file store, so
    a load always returns a fresh object equal to what a file round-trip
    would produce.
    """

    def __init__(self, *, key: str = DEFAULT_STATE_KEY) -> None:
        self._key = key
        self._documents: dict[str, str] = {}

    @property
    def key(self) -> str:
        return self._key

    def get_document(self) -> str | None:
        """Raw JSON document currently stored under this store's key."""
        return self._documents.get(self._key)

    def put_document(self, raw: str) -> None:
        self._documents[self._key] = raw

    async def get_velocity_data(self) -> VelocityData | None:
        raw = self._documents.get(self._key)
        if raw is None:
            return None
        return deserialize_velocity_data(raw, key=self._key)

    async def save_velocity_data(self, data: VelocityData) -> None:
        self._documents[self._key] = serialize_velocity_data(data)


class JsonFileStateStore:
    """Store writing one JSON document per key under a workspace directory.

    Parameters
    ----------
    state_dir : Path
        Workspace-scoped directory; created on first write.
    key : str
        Document key; the file is ``<state_dir>/<key>.json``.
    """

    def __init__(self, state_dir: Path | str, *, key: str = DEFAULT_STATE_KEY) -> None:
        self._state_dir = Path(state_dir)
        self._key = key

    @property
    def path(self) -> Path:
        return self._state_dir / f"{self._key}.json"

    async def get_velocity_data(self) -> VelocityData | None:
        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(None, self._read)
        if raw is None:
            _logger.debug("No velocity data at %s", self.path)
            return None
        return deserialize_velocity_data(raw, key=self._key)

    async def save_velocity_data(self, data: VelocityData) -> None:
        raw = serialize_velocity_data(data)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, raw)
        _logger.debug("Velocity data written to %s (%d bytes)", self.path, len(raw))

    def _read(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"Could not read {self.path}: {exc}", key=self._key) from exc

    def _write(self, raw: str) -> None:
        try:
            atomic_write_text(self.path, raw)
        except OSError as exc:
            raise PersistenceError(f"Could not write {self.path}: {exc}", key=self._key) from exc
