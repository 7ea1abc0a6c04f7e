"""Selection store for in-progress closing entries.

Captured readings and collections are saved under the shift id on every
change so a reloaded wizard resumes where the operator left off. The store
is cleared once the shift is closed.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import structlog

from shift_closing.config import get_settings

logger = structlog.get_logger(__name__)


def scope_key(shift_id: str, section: str) -> str:
    return f"shift-closing:{shift_id}:{section}"


class SelectionStore(Protocol):
    def load(self, key: str) -> dict[str, Any] | None: ...

    def save(self, key: str, data: dict[str, Any]) -> None: ...

    def clear(self, prefix: str) -> None: ...


class InMemorySelectionStore:
    """Store that lives as long as the process. Used by tests and previews."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}

    def load(self, key: str) -> dict[str, Any] | None:
        value = self._data.get(key)
        return json.loads(json.dumps(value)) if value is not None else None

    def save(self, key: str, data: dict[str, Any]) -> None:
        self._data[key] = json.loads(json.dumps(data))

    def clear(self, prefix: str) -> None:
        for key in [k for k in self._data if k.startswith(prefix)]:
            del self._data[key]

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileSelectionStore:
    """Store backed by one JSON file per key in a directory."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._logger = logger.bind(component="selection_store", directory=str(self.directory))

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in key)
        return self.directory / f"{safe}.json"

    def load(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with path.open(encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            self._logger.warning("selection_store_corrupt", key=key, error=str(e))
            return None

    def save(self, key: str, data: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(prefix=".selection.", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except OSError:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def clear(self, prefix: str) -> None:
        if not self.directory.exists():
            return
        safe_prefix = self._path(prefix).stem
        for path in self.directory.glob("*.json"):
            if path.stem.startswith(safe_prefix):
                path.unlink()
        self._logger.debug("selection_store_cleared", prefix=prefix)


def default_selection_store() -> SelectionStore:
    """File store under ``SELECTION_STORE_DIR`` when configured, else in memory."""
    directory = get_settings().selection_store_dir
    if directory is None:
        return InMemorySelectionStore()
    return JsonFileSelectionStore(directory)
