"""
Local persistent key/value storage.

Stands in for the browser's local storage: values are JSON-serialisable
and survive restarts when the file-backed store is used.
"""

from __future__ import annotations

import json
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from clinicrm.logging import get_logger

logger = get_logger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalStore(ABC):
    """Minimal key/value interface shared by the memory and file stores."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serialisable value under a key."""

    @abstractmethod
    def remove(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""

    @abstractmethod
    def keys(self) -> List[str]:
        """All keys currently stored."""

    def has(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryStore(LocalStore):
    """In-process store; contents are lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        # Serialise on write so callers never share mutable state with the store
        self._data[key] = json.dumps(value, default=str)

    def remove(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> List[str]:
        return list(self._data)


class JsonFileStore(LocalStore):
    """
    Directory-backed store: one `<key>.json` file per key.

    Writes go through a temporary file and an atomic rename.
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable storage entry {path}: {e}")
            return None

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(value, indent=2, default=str))
        os.replace(tmp_path, path)

    def remove(self, key: str) -> bool:
        path = self._path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def keys(self) -> List[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))
