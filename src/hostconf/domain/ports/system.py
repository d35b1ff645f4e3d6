"""Ports for the host's package, service and security-context tooling."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Collection
    from pathlib import Path


@runtime_checkable
class ServiceManager(Protocol):
    def enable(self, service: str) -> None: ...

    def disable(self, service: str) -> None: ...

    def start(self, service: str) -> None: ...

    def stop(self, service: str) -> None: ...

    def restart(self, service: str) -> None: ...

    def reload_or_restart(self, service: str) -> None: ...


@runtime_checkable
class PackageManager(Protocol):
    def is_installed(self, package: str) -> bool: ...

    def install(self, package: str) -> bool:
        """Install ``package`` if missing; return whether anything was installed."""
        ...

    def remove(self, package: str) -> bool:
        """Remove ``package`` if present; return whether anything was removed."""
        ...


@runtime_checkable
class Relabeler(Protocol):
    """Restores security contexts for paths replaced during a pass."""

    def relabel(self, paths: Collection[Path]) -> None: ...


@runtime_checkable
class TimeZoneControl(Protocol):
    """Sets the system time zone through the host's own tooling."""

    def set_time_zone(self, zone: str) -> None: ...
