"""Transient, auto-expiring notifications for the UI layer.

Notifications expire on their own after a fixed delay (3 seconds by default)
or when dismissed. Expiry is handled by a ``TTLCache`` so no timer task is
needed.
"""

import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from cachetools import TTLCache

logger = logging.getLogger(__name__)


class Severity(StrEnum):
    """Notification severity."""

    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """A message shown to the user for a short time."""

    id: int
    message: str
    severity: Severity


class NotificationCenter:
    """Holds active notifications and expires them after ``ttl`` seconds."""

    def __init__(
        self,
        ttl: float = 3.0,
        maxsize: int = 32,
        timer: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the center.

        Args:
            ttl: Seconds before a notification disappears
            maxsize: Maximum simultaneous notifications
            timer: Clock used for expiry (injectable for tests)
        """
        self._cache: TTLCache[int, Notification] = TTLCache(
            maxsize=maxsize, ttl=ttl, timer=timer or time.monotonic
        )
        self._ids = itertools.count(1)

    def publish(self, message: str, severity: Severity = Severity.INFO) -> Notification:
        """Show a new notification."""
        notification = Notification(id=next(self._ids), message=message, severity=severity)
        self._cache[notification.id] = notification
        log = logger.warning if severity == Severity.ERROR else logger.info
        log("Notification [%s]: %s", severity, message)
        return notification

    def dismiss(self, notification_id: int) -> None:
        """Remove a notification before it expires."""
        self._cache.pop(notification_id, None)

    def active(self) -> list[Notification]:
        """Notifications that have not expired yet, oldest first."""
        self._cache.expire()
        return sorted(self._cache.values(), key=lambda n: n.id)

    def latest(self) -> Notification | None:
        """Most recent active notification."""
        current = self.active()
        return current[-1] if current else None
