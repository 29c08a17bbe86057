"""
Persistence for the admin bypass session record.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from clinicrm.storage.store import LocalStore

BYPASS_KEY = "admin_bypass"


class SessionStore(ABC):
    """Where the bypass session record lives between runs."""

    @abstractmethod
    def get(self) -> Optional[Dict[str, Any]]:
        """The stored profile record, or None when no bypass is active."""

    @abstractmethod
    def set(self, record: Dict[str, Any]) -> None:
        """Persist the profile record of an active bypass session."""

    @abstractmethod
    def clear(self) -> None:
        """Forget the bypass session."""


class MemorySessionStore(SessionStore):
    """Bypass record held only for the lifetime of the process."""

    def __init__(self, record: Optional[Dict[str, Any]] = None):
        self._record = dict(record) if record else None

    def get(self) -> Optional[Dict[str, Any]]:
        return dict(self._record) if self._record else None

    def set(self, record: Dict[str, Any]) -> None:
        self._record = dict(record)

    def clear(self) -> None:
        self._record = None


class LocalSessionStore(SessionStore):
    """Bypass record kept in a LocalStore under the `admin_bypass` key."""

    def __init__(self, store: LocalStore, key: str = BYPASS_KEY):
        self.store = store
        self.key = key

    def get(self) -> Optional[Dict[str, Any]]:
        record = self.store.get(self.key)
        return record if isinstance(record, dict) and record else None

    def set(self, record: Dict[str, Any]) -> None:
        self.store.set(self.key, record)

    def clear(self) -> None:
        self.store.remove(self.key)
