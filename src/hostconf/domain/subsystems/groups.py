"""Group database: ``/etc/group`` merged under the managed gid range.

The file is read fresh on every pass because other system tools edit it too.
Entries with a gid outside ``[gid_min, gid_max]`` belong to the system and are
never changed here.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from hostconf.domain.errors import SnapshotError
from hostconf.domain.reconciliation import ManagedArtifact, merge_registry

from .base import SubsystemReconciler

if TYPE_CHECKING:
    from pathlib import Path

    from hostconf.domain.model import LinuxGroup
    from hostconf.domain.reconciliation import RebuildPass

log = getLogger(__name__)

GROUP_FILE = "/etc/group"
BACKUP_FILE = "/etc/group-"
BOOTSTRAP_GROUP = "root"


@dataclass(frozen=True, slots=True, eq=False)
class GroupEntry:
    """One ``name:x:gid:members`` line; equal when gid and member set match."""

    name: str
    gid: int
    members: tuple[str, ...] = ()

    @property
    def ident(self) -> int:
        return self.gid

    @classmethod
    def parse(cls, line: str) -> GroupEntry:
        values = line.split(":")
        if len(values) < 3:
            raise ValueError(f"At least the first three fields of group file required: {line}")
        if len(values) > 4:
            raise ValueError(f"Too many fields: {line}")
        if not values[2]:
            raise ValueError(f"gid missing: {line}")
        members = tuple(member for member in values[3].split(",") if member) if len(values) > 3 else ()
        return cls(name=values[0], gid=int(values[2]), members=members)

    @classmethod
    def from_group(cls, group: LinuxGroup) -> GroupEntry:
        return cls(name=group.name, gid=group.gid, members=tuple(sorted(set(group.members))))

    def to_line(self) -> str:
        return f"{self.name}:x:{self.gid}:{','.join(self.members)}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GroupEntry):
            return NotImplemented
        return (
            self.name == other.name
            and self.gid == other.gid
            and set(self.members) == set(other.members)
        )

    def __hash__(self) -> int:
        return hash((self.name, self.gid, frozenset(self.members)))


def read_group_file(path: Path) -> list[GroupEntry]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    entries: list[GroupEntry] = []
    seen: set[str] = set()
    for line in text.splitlines():
        if not line:
            continue
        entry = GroupEntry.parse(line)
        if entry.name in seen:
            raise SnapshotError(f"{path} contains duplicate entry: {line}")
        seen.add(entry.name)
        entries.append(entry)
    return entries


class GroupDatabaseReconciler(SubsystemReconciler):
    name = "groups"
    sources = ("host", "linux_group", "linux_group_member")

    def rebuild(self, rebuild_pass: RebuildPass) -> None:
        with self.context.snapshots() as snapshot:
            host = snapshot.host()
            self.require_supported(host)
            desired = [GroupEntry.from_group(group) for group in snapshot.groups()]

        path = self.layout.path(GROUP_FILE)
        existing = read_group_file(path)
        result = merge_registry(
            existing,
            desired,
            host.managed_gids,
            bootstrap=BOOTSTRAP_GROUP,
        )
        for change in result.changes:
            log.debug("%s: %s", path, change.describe())
        rebuild_pass.commit(
            ManagedArtifact(
                path=path,
                content=result.content,
                uid=self.layout.root_uid,
                gid=self.layout.root_gid,
                mode=0o644,
                backup=self.layout.path(BACKUP_FILE),
            )
        )
