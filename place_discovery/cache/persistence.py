"""
Snapshot persistence for the result cache.

The cache is serialised as a JSON array of ``[key, entry]`` pairs and kept
under a single storage key in a small string key-value store. The schema is
internal and may change between versions; anything that fails to decode is
reported as :class:`CacheCorruption` and the caller starts empty.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from ..discovery.errors import CacheCorruption
from .models import CacheEntry

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemorySnapshotStore:
    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class FileSnapshotStore:
    """One JSON file per storage key inside *directory*."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = self._path(key).with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(self._path(key))

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def encode_snapshot(entries: Iterable[tuple[str, CacheEntry]]) -> str:
    return json.dumps(
        [[key, entry.model_dump(mode="json")] for key, entry in entries],
        default=str,
    )


def decode_snapshot(raw: str) -> list[tuple[str, CacheEntry]]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CacheCorruption(f"Snapshot is not valid JSON: {exc}") from exc

    if not isinstance(data, list):
        raise CacheCorruption(f"Snapshot must be a list, got {type(data).__name__}")

    entries: list[tuple[str, CacheEntry]] = []
    for i, pair in enumerate(data):
        if not isinstance(pair, list) or len(pair) != 2 or not isinstance(pair[0], str):
            raise CacheCorruption(f"Snapshot item {i} is not a [key, entry] pair")
        try:
            entries.append((pair[0], CacheEntry.model_validate(pair[1])))
        except ValidationError as exc:
            raise CacheCorruption(f"Snapshot item {i} has an invalid entry") from exc
    return entries


def load_snapshot(store: SnapshotStore, storage_key: str) -> list[tuple[str, CacheEntry]]:
    """Read a snapshot, returning ``[]`` when it is missing or corrupt."""
    try:
        raw = store.get_item(storage_key)
    except OSError:
        logger.warning("Could not read cache snapshot %r", storage_key, exc_info=True)
        return []
    if not raw:
        return []
    try:
        entries = decode_snapshot(raw)
    except CacheCorruption:
        logger.warning("Discarding corrupt cache snapshot %r", storage_key, exc_info=True)
        return []
    logger.info("Loaded %d cache entries from snapshot %r", len(entries), storage_key)
    return entries


def save_snapshot(
    store: SnapshotStore,
    storage_key: str,
    entries: Iterable[tuple[str, CacheEntry]],
) -> None:
    try:
        store.set_item(storage_key, encode_snapshot(entries))
    except (OSError, TypeError, ValueError):
        logger.warning("Failed to save cache snapshot %r", storage_key, exc_info=True)
