"""Merge desired entries into a registry file that other system tools also own.

Entries are classified by identifier: inside the managed range they belong to
the daemon, outside it they belong to the system and are read-only here. The
merge is a pure function; it never touches the inputs and never writes, so a
rejected merge leaves the registry file exactly as it was.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, Protocol

from hostconf.domain.errors import MergeSafetyError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from hostconf.domain.model import IdRange

log = getLogger(__name__)


class RegistryEntry(Protocol):
    """One record of a line-oriented registry such as ``/etc/group``.

    Equality decides whether an existing record already matches the desired one.
    """

    @property
    def name(self) -> str: ...

    @property
    def ident(self) -> int: ...

    def to_line(self) -> str: ...


class ChangeKind(StrEnum):
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"


@dataclass(frozen=True, slots=True)
class RegistryChange[E: RegistryEntry]:
    kind: ChangeKind
    name: str
    before: E | None = None
    after: E | None = None

    def describe(self) -> str:
        match self.kind:
            case ChangeKind.ADDED:
                return f"add {self.after.to_line() if self.after else self.name}"
            case ChangeKind.REMOVED:
                return f"remove {self.before.to_line() if self.before else self.name}"
            case ChangeKind.UPDATED:
                before = self.before.to_line() if self.before else "?"
                after = self.after.to_line() if self.after else "?"
                return f"update {before} -> {after}"


def serialize_registry(entries: Iterable[RegistryEntry]) -> bytes:
    return "".join(f"{entry.to_line()}\n" for entry in entries).encode("utf-8")


@dataclass(frozen=True, slots=True, kw_only=True)
class MergeResult[E: RegistryEntry]:
    entries: tuple[E, ...]
    changes: tuple[RegistryChange[E], ...]

    @property
    def changed(self) -> bool:
        return bool(self.changes)

    @property
    def content(self) -> bytes:
        return serialize_registry(self.entries)


def _index_desired[E: RegistryEntry](desired: Iterable[E]) -> dict[str, E]:
    by_name: dict[str, E] = {}
    for entry in desired:
        if entry.name in by_name:
            raise MergeSafetyError(entry.name, "declared more than once in desired state")
        by_name[entry.name] = entry
    return by_name


def merge_registry[E: RegistryEntry](
    existing: Sequence[E],
    desired: Iterable[E],
    managed: IdRange,
    *,
    bootstrap: str | None = None,
) -> MergeResult[E]:
    """Return the registry that results from applying ``desired`` to ``existing``.

    Existing order is preserved; new entries are appended ordered by
    ``(ident, name)``. Raises ``MergeSafetyError`` naming the offending entry when
    the merge would move an entry across the managed boundary, modify or create
    a system entry, or lose the ``bootstrap`` entry.
    """

    wanted_by_name = _index_desired(desired)
    entries: list[E] = []
    changes: list[RegistryChange[E]] = []

    for current in existing:
        current_managed = current.ident in managed
        wanted = wanted_by_name.get(current.name)
        if wanted is None:
            if not current_managed:
                entries.append(current)
                continue
            if current.name == bootstrap:
                raise MergeSafetyError(current.name, "refusing to remove the bootstrap entry")
            log.info("Removing %s (id %d)", current.name, current.ident)
            changes.append(RegistryChange(ChangeKind.REMOVED, current.name, before=current))
            continue

        wanted_managed = wanted.ident in managed
        if wanted_managed != current_managed:
            raise MergeSafetyError(
                current.name,
                "refusing to move id between system and managed ranges "
                f"from {current.ident} to {wanted.ident}",
            )
        if wanted == current:
            entries.append(current)
            continue
        if not current_managed:
            raise MergeSafetyError(
                current.name,
                f"refusing to modify system entry {current.to_line()!r} "
                f"into {wanted.to_line()!r}",
            )
        log.info("Updating %s: %s -> %s", current.name, current.to_line(), wanted.to_line())
        entries.append(wanted)
        changes.append(
            RegistryChange(ChangeKind.UPDATED, current.name, before=current, after=wanted)
        )

    existing_names = {entry.name for entry in existing}
    additions = sorted(
        (entry for name, entry in wanted_by_name.items() if name not in existing_names),
        key=lambda entry: (entry.ident, entry.name),
    )
    for entry in additions:
        if entry.ident not in managed:
            raise MergeSafetyError(
                entry.name, f"refusing to create entry with system id {entry.ident}"
            )
        log.info("Adding %s", entry.to_line())
        entries.append(entry)
        changes.append(RegistryChange(ChangeKind.ADDED, entry.name, after=entry))

    if bootstrap is not None and not any(entry.name == bootstrap for entry in entries):
        raise MergeSafetyError(bootstrap, "bootstrap entry missing from merged registry")

    return MergeResult(entries=tuple(entries), changes=tuple(changes))
