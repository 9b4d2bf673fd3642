"""
Key-value persistence collaborator.

The engine treats persistence as a generic keyed store with one key per
collection. Two implementations are provided: an in-memory store for tests
and embedding, and a JSON file store for local use.

Thread Safety:
    JsonFileStore uses atomic writes (write to temp file, then rename) so a
    crash mid-write never leaves a truncated collection behind.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+$")


class KeyValueStore(Protocol):
    """Load/save contract consumed by the engine."""

    def load(self, key: str) -> Any | None:
        """Return the JSON value stored under key, or None when absent."""
        ...

    def save(self, key: str, data: Any) -> None:
        """Persist a JSON-serialisable value under key."""
        ...


class InMemoryStore:
    """Dictionary-backed store; values are deep-copied on the way in and out."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def load(self, key: str) -> Any | None:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    def save(self, key: str, data: Any) -> None:
        self._data[key] = copy.deepcopy(data)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStore:
    """File-based store writing one ``<key>.json`` document per key."""

    def __init__(self, base_dir: Path | str = "data") -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.base_dir / f"{key}.json"

    def _atomic_write(self, file_path: Path, content: str) -> None:
        """
        Atomically write content to a file.

        Args:
            file_path: Target file path
            content: Serialized JSON text

        Raises:
            OSError: If write or rename fails
        """
        # Temp file in the same directory keeps the rename on one filesystem
        fd, temp_path = tempfile.mkstemp(
            suffix=".tmp", prefix=file_path.stem, dir=file_path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(temp_path, file_path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def load(self, key: str) -> Any | None:
        """
        Load the document stored under key.

        Missing, unreadable or corrupt files are reported as absent so the
        caller falls back to an empty collection.
        """
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load {path.name}, treating as absent: {e}")
            return None

    def save(self, key: str, data: Any) -> None:
        path = self._path_for(key)
        self._atomic_write(path, json.dumps(data, indent=2, default=str))
