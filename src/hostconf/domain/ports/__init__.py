"""Domain port definitions for adapters."""

from __future__ import annotations

from .notifier import ChangeNotifier, NotificationHandle
from .snapshots import HostSnapshot, SnapshotFactory
from .system import PackageManager, Relabeler, ServiceManager, TimeZoneControl

__all__ = [
    "ChangeNotifier",
    "HostSnapshot",
    "NotificationHandle",
    "PackageManager",
    "Relabeler",
    "ServiceManager",
    "SnapshotFactory",
    "TimeZoneControl",
]
