"""Pieces every subsystem reconciler shares."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from hostconf.domain.errors import SnapshotError, UnsupportedEnvironmentError
from hostconf.domain.model import OperatingSystem

if TYPE_CHECKING:
    from hostconf.domain.model import Host, LinuxGroup
    from hostconf.domain.ports import (
        PackageManager,
        ServiceManager,
        SnapshotFactory,
        TimeZoneControl,
    )
    from hostconf.domain.reconciliation import RebuildPass


@dataclass(frozen=True, slots=True, kw_only=True)
class HostLayout:
    """Where the host's filesystem lives and who "root" is on it.

    Production runs against ``/`` as uid/gid 0; tests point ``root`` at a
    temporary directory owned by the current user.
    """

    root: Path = Path("/")
    root_uid: int = 0
    root_gid: int = 0

    def path(self, absolute: str) -> Path:
        return self.root / absolute.lstrip("/")


@dataclass(frozen=True, slots=True, kw_only=True)
class SubsystemContext:
    snapshots: SnapshotFactory
    layout: HostLayout
    services: ServiceManager
    packages: PackageManager
    time_zones: TimeZoneControl | None = None
    uninstall_enabled: bool = False


class SubsystemReconciler:
    """Base for the per-subsystem rebuild callbacks.

    Subclasses set ``name``, ``sources`` (data store tables they listen to) and
    ``supported`` (host variants they manage), and implement ``rebuild``.
    """

    name: ClassVar[str]
    sources: ClassVar[tuple[str, ...]]
    supported: ClassVar[frozenset[OperatingSystem]] = frozenset(
        {OperatingSystem.CENTOS_5, OperatingSystem.CENTOS_7}
    )

    def __init__(self, context: SubsystemContext) -> None:
        self.context = context

    @property
    def layout(self) -> HostLayout:
        return self.context.layout

    @classmethod
    def applies_to(cls, operating_system: OperatingSystem) -> bool:
        return operating_system in cls.supported

    def require_supported(self, host: Host) -> OperatingSystem:
        if not self.applies_to(host.operating_system):
            raise UnsupportedEnvironmentError(self.name, host.operating_system)
        return host.operating_system

    def rebuild(self, rebuild_pass: RebuildPass) -> None:
        raise NotImplementedError

    # Subclasses that need a service reload after a changed pass override this
    reload = None


def find_group(groups: list[LinuxGroup], name: str) -> LinuxGroup:
    for group in groups:
        if group.name == name:
            return group
    raise SnapshotError(f"Group not found on this host: {name}")
