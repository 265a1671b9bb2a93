"""
User-visible notifications.

Boundary operations that recover from an error leave a message here for
whoever is presenting results to the user (the plugin returns them with
its reply).
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


_LOG_LEVELS = {
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.WARN: logging.WARNING,
    NotificationLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str

    def to_dict(self):
        return {"level": self.level.value, "message": self.message}


class Notifications:
    """Collects notifications until they are drained."""

    def __init__(self):
        self._pending: List[Notification] = []

    def __len__(self) -> int:
        return len(self._pending)

    def notify(self, level: NotificationLevel, message: str) -> None:
        logger.log(_LOG_LEVELS[level], "Notification (%s): %s", level.value, message)
        self._pending.append(Notification(level, message))

    def info(self, message: str) -> None:
        self.notify(NotificationLevel.INFO, message)

    def warn(self, message: str) -> None:
        self.notify(NotificationLevel.WARN, message)

    def error(self, message: str) -> None:
        self.notify(NotificationLevel.ERROR, message)

    def drain(self) -> List[Notification]:
        """Return pending notifications and clear them."""
        pending, self._pending = self._pending, []
        return pending
