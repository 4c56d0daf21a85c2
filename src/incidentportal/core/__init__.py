"""Core utilities shared by the portal modules."""

from incidentportal.core.config import Region, Settings, get_settings
from incidentportal.core.normalize import NormalizedRecord, status_label
from incidentportal.core.notify import Notification, NotificationCenter, Severity
from incidentportal.core.session import (
    KeyValueStore,
    MemoryKeyValueStore,
    Session,
    can_mutate,
    load_session,
)

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "NormalizedRecord",
    "Notification",
    "NotificationCenter",
    "Region",
    "Session",
    "Settings",
    "Severity",
    "can_mutate",
    "get_settings",
    "load_session",
    "status_label",
]
