"""Records shared between the reconciler engine and the subsystem rebuilds."""

from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from .commit import CommitResult, commit_artifact, trim_directory

if TYPE_CHECKING:
    from collections.abc import Collection
    from pathlib import Path

    from .commit import ManagedArtifact
    from .memo import VersionMemo, VersionToken


class PassStatus(StrEnum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ReconcilerState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    RUNNING_PENDING = "running-pending-rerun"


@dataclass(slots=True, kw_only=True)
class RebuildPass:
    """One execution of a reconciler's rebuild callback.

    Subsystems commit artifacts through ``commit`` so the pass knows whether
    anything changed and which paths need a security-context restore.
    ``versions`` holds the snapshot version markers seen during the pass.
    """

    reconciler: str
    memo: VersionMemo
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    versions: dict[Hashable, VersionToken] = field(default_factory=dict)
    committed: dict[Path, CommitResult] = field(default_factory=dict)
    removed: list[Path] = field(default_factory=list)
    relabel: set[Path] = field(default_factory=set)
    dirty: bool = False
    status: PassStatus = PassStatus.RUNNING
    error: Exception | None = None
    finished_at: datetime | None = None

    def commit(self, artifact: ManagedArtifact) -> CommitResult:
        result = commit_artifact(artifact, relabel=self.relabel)
        self.committed[artifact.path] = result
        return result

    def trim(
        self,
        directory: Path,
        keep: Collection[str],
        *,
        owned: bool,
        allow: Collection[str] = (),
        managed: Collection[str] = (),
    ) -> list[str]:
        removed = trim_directory(directory, keep, owned=owned, allow=allow, managed=managed)
        self.removed.extend(directory / name for name in removed)
        return removed

    def record(self, key: Hashable, token: VersionToken) -> None:
        self.versions[key] = token

    def mark_changed(self) -> None:
        """Flag a change made outside the commit primitive (a command, a mkdir)."""

        self.dirty = True

    @property
    def changed(self) -> bool:
        return (
            self.dirty
            or bool(self.removed)
            or any(result.changed for result in self.committed.values())
        )

    @property
    def succeeded(self) -> bool:
        return self.status is PassStatus.SUCCEEDED

    @property
    def duration(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def succeed(self) -> None:
        self.status = PassStatus.SUCCEEDED
        self.finished_at = datetime.now(UTC)

    def fail(self, error: Exception) -> None:
        self.status = PassStatus.FAILED
        self.error = error
        self.finished_at = datetime.now(UTC)


type RebuildCallback = Callable[[RebuildPass], None]
type ReloadCallback = Callable[[], None]
