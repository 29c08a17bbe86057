"""
User-facing notices.

The dashboard showed "toasts" for successes and failures; here a Notifier
records each notice, logs it, and prints it through a rich Console when
one is attached (the CLI attaches one, the server and tests do not).
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Deque, List, Optional

from rich.console import Console
from rich.markup import escape

from clinicrm.logging import get_logger

logger = get_logger(__name__)


class NoticeLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_STYLES = {
    NoticeLevel.INFO: ("dim", ""),
    NoticeLevel.SUCCESS: ("green", "✓ "),
    NoticeLevel.WARNING: ("yellow", "! "),
    NoticeLevel.ERROR: ("red", "✗ "),
}


@dataclass
class Notice:
    """A single user-facing message."""
    level: NoticeLevel
    message: str
    created_at: datetime = field(default_factory=datetime.now)


class Notifier:
    """Collects notices and optionally renders them to a console."""

    def __init__(self, console: Optional[Console] = None, history_size: int = 200):
        self.console = console
        self._history: Deque[Notice] = deque(maxlen=history_size)

    @property
    def history(self) -> List[Notice]:
        return list(self._history)

    def messages(self, level: Optional[NoticeLevel] = None) -> List[str]:
        """Messages in the history, optionally only those of one level."""
        return [n.message for n in self._history if level is None or n.level == level]

    def clear(self) -> None:
        self._history.clear()

    def notify(self, level: NoticeLevel, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        self._history.append(notice)

        if level == NoticeLevel.ERROR:
            logger.error(message)
        elif level == NoticeLevel.WARNING:
            logger.warning(message)
        else:
            logger.info(message)

        if self.console is not None:
            style, prefix = _STYLES[level]
            text = escape(message)
            self.console.print(f"[{style}]{prefix}{text}[/{style}]" if style else text)

        return notice

    def info(self, message: str) -> Notice:
        return self.notify(NoticeLevel.INFO, message)

    def success(self, message: str) -> Notice:
        return self.notify(NoticeLevel.SUCCESS, message)

    def warning(self, message: str) -> Notice:
        return self.notify(NoticeLevel.WARNING, message)

    def error(self, message: str) -> Notice:
        return self.notify(NoticeLevel.ERROR, message)
