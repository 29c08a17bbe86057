"""
Query and mutation hooks over the remote store.
"""

from clinicrm.hooks.state import HookState
from clinicrm.hooks.query import QueryHook, QueryOptions, QueryResult, OrderBy
from clinicrm.hooks.mutation import MutationHook

__all__ = [
    "HookState",
    "QueryHook",
    "QueryOptions",
    "QueryResult",
    "OrderBy",
    "MutationHook",
]
