"""
Local persistent storage: key/value stores, the bypass session record
and the demo data cache.
"""

from clinicrm.storage.store import LocalStore, MemoryStore, JsonFileStore
from clinicrm.storage.session import (
    SessionStore,
    MemorySessionStore,
    LocalSessionStore,
    BYPASS_KEY,
)
from clinicrm.storage.cache import (
    DemoCache,
    DEMO_PATIENTS_KEY,
    DEMO_FOLLOW_UPS_KEY,
    is_demo_id,
)

__all__ = [
    "LocalStore",
    "MemoryStore",
    "JsonFileStore",
    "SessionStore",
    "MemorySessionStore",
    "LocalSessionStore",
    "BYPASS_KEY",
    "DemoCache",
    "DEMO_PATIENTS_KEY",
    "DEMO_FOLLOW_UPS_KEY",
    "is_demo_id",
]
