"""System time zone."""

from __future__ import annotations

import os
from logging import getLogger
from typing import TYPE_CHECKING

from hostconf.domain.errors import ReconcileError
from hostconf.domain.model import OperatingSystem
from hostconf.domain.reconciliation import ManagedArtifact, ensure_symlink

from .base import SubsystemReconciler

if TYPE_CHECKING:
    from pathlib import Path

    from hostconf.domain.reconciliation import RebuildPass

log = getLogger(__name__)

LOCALTIME = "/etc/localtime"
CLOCK_FILE = "/etc/sysconfig/clock"


def zone_target(zone: str) -> str:
    return f"../usr/share/zoneinfo/{zone}"


def render_clock(zone: str) -> bytes:
    return f'ZONE="{zone}"\nUTC=true\nARC=false\n'.encode("utf-8")


def _links_to(path: Path, target: str) -> bool:
    return path.is_symlink() and os.readlink(path) == target


class TimeZoneReconciler(SubsystemReconciler):
    name = "timezone"
    sources = ("host",)

    def rebuild(self, rebuild_pass: RebuildPass) -> None:
        with self.context.snapshots() as snapshot:
            host = snapshot.host()
        operating_system = self.require_supported(host)
        zone = host.time_zone
        rebuild_pass.record("time_zone", zone)
        localtime = self.layout.path(LOCALTIME)
        target = zone_target(zone)

        if operating_system is OperatingSystem.CENTOS_7:
            if _links_to(localtime, target):
                return
            if self.context.time_zones is None:
                raise ReconcileError("No time zone control configured for this host")
            log.info("Setting time zone: %s", zone)
            self.context.time_zones.set_time_zone(zone)
            rebuild_pass.mark_changed()
            return

        if ensure_symlink(
            localtime,
            target,
            uid=self.layout.root_uid,
            gid=self.layout.root_gid,
            backup=localtime.with_name(localtime.name + ".old"),
        ):
            rebuild_pass.relabel.add(localtime)
            rebuild_pass.mark_changed()
        rebuild_pass.commit(
            ManagedArtifact(
                path=self.layout.path(CLOCK_FILE),
                content=render_clock(zone),
                uid=self.layout.root_uid,
                gid=self.layout.root_gid,
                mode=0o755,
            )
        )
