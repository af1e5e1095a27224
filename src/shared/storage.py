"""Asynchronous key/value storage areas.

A storage area maps string keys to JSON-compatible values. The options
("sync") area and the session ("local") area are separate instances.
File-backed areas keep one JSON object per file, written atomically with
owner-only permissions (0o600 file inside a 0o700 directory).
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import json
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = structlog.get_logger()

_STORAGE_DIR_MODE = 0o700
_STORAGE_FILE_MODE = 0o600


class StorageError(OSError):
    """A storage area could not be read or written."""


class KeyValueStorage(Protocol):
    """Protocol for a persistent key/value storage area."""

    async def get(self, keys: Iterable[str]) -> dict[str, Any]: ...

    async def set(self, items: Mapping[str, Any]) -> None: ...

    async def remove(self, keys: Iterable[str]) -> None: ...


class MemoryKeyValueStorage:
    """In-process storage area.

    Values are deep-copied in both directions so callers never share
    mutable objects with the store.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(dict(initial or {}))

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        return {key: copy.deepcopy(self._data[key]) for key in keys if key in self._data}

    async def set(self, items: Mapping[str, Any]) -> None:
        self._data.update(copy.deepcopy(dict(items)))

    async def remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of everything stored (for inspection)."""
        return copy.deepcopy(self._data)


class FileKeyValueStorage:
    """Storage area persisted as a single JSON object on disk.

    The file is loaded lazily on first access. Every mutation rewrites the
    whole file through a temp-file-then-rename so readers never observe a
    partial write. An existing file that cannot be read or parsed raises
    StorageError rather than being silently replaced.
    """

    def __init__(self, file_path: str | Path) -> None:
        self._file_path = Path(file_path)
        self._data: dict[str, Any] = {}
        self._lock = asyncio.Lock()
        self._loaded = False

    def _load_from_file(self) -> None:
        self._data = {}
        if not self._file_path.exists():
            return
        try:
            data = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            raise StorageError(f"Failed to read storage file {self._file_path}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Expected JSON object at root in {self._file_path}")
        self._data = data

    def _save_to_file(self, data: dict[str, Any]) -> None:
        directory = self._file_path.parent
        directory.mkdir(mode=_STORAGE_DIR_MODE, parents=True, exist_ok=True)
        content = json.dumps(data, indent=2, sort_keys=True).encode("utf-8")

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{self._file_path.stem}_", suffix=".tmp")
        fd_owned = True
        try:
            with os.fdopen(fd, "wb") as f:
                fd_owned = False  # os.fdopen now owns fd
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
                os.fchmod(f.fileno(), _STORAGE_FILE_MODE)
            Path(tmp_path).replace(self._file_path)
        except BaseException:
            if fd_owned:
                with contextlib.suppress(OSError):
                    os.close(fd)
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._load_from_file()
            self._loaded = True

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        async with self._lock:
            await self._ensure_loaded()
            return {key: copy.deepcopy(self._data[key]) for key in keys if key in self._data}

    async def set(self, items: Mapping[str, Any]) -> None:
        async with self._lock:
            await self._ensure_loaded()
            updated = {**self._data, **copy.deepcopy(dict(items))}
            try:
                self._save_to_file(updated)
            except (OSError, TypeError, ValueError) as exc:
                raise StorageError(f"Failed to write storage file {self._file_path}") from exc
            self._data = updated
        logger.debug("storage written", path=str(self._file_path), keys=sorted(items))

    async def remove(self, keys: Iterable[str]) -> None:
        async with self._lock:
            await self._ensure_loaded()
            keys = [key for key in keys if key in self._data]
            if not keys:
                return
            updated = {k: v for k, v in self._data.items() if k not in keys}
            try:
                self._save_to_file(updated)
            except OSError as exc:
                raise StorageError(f"Failed to write storage file {self._file_path}") from exc
            self._data = updated
