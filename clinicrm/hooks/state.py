"""Loading / error bookkeeping shared by the query and mutation hooks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from clinicrm.errors import CRMError


@dataclass
class HookState:
    loading: bool = False
    error: Optional[CRMError] = None
    data: Any = None

    def begin(self) -> None:
        """Start an operation: loading, no error, no result."""
        self.loading = True
        self.error = None
        self.data = None

    def succeed(self, data: Any = None) -> None:
        self.loading = False
        self.error = None
        self.data = data

    def fail(self, error: CRMError) -> None:
        self.loading = False
        self.error = error

    def reset(self) -> None:
        self.loading = False
        self.error = None
        self.data = None
