"""Ports for change notification delivery."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class NotificationHandle(Protocol):
    """Anything that wants to hear that a source may have changed."""

    def on_notification(self) -> None: ...


@runtime_checkable
class ChangeNotifier(Protocol):
    """Delivers payload-free "something changed" events per source."""

    def subscribe(self, source: str, handle: NotificationHandle) -> None: ...

    def unsubscribe(self, source: str, handle: NotificationHandle) -> None: ...
