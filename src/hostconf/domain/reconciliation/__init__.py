"""Reconciliation core shared by every subsystem.

Layers, leaves first:
1) ``commit``: atomic, idempotent write of one artifact
2) ``merge``: safe merge into a partially foreign-owned registry
3) ``engine``: coalesced triggering and serialized rebuilds per subsystem
4) ``registry``: the process-wide set of reconcilers and their worker pool
"""

from __future__ import annotations

from .commit import (
    CommitResult,
    ManagedArtifact,
    commit_artifact,
    commit_file,
    ensure_directory,
    ensure_symlink,
    find_unused_backup,
    trim_directory,
)
from .contracts import PassStatus, RebuildPass, ReconcilerState
from .engine import Reconciler
from .memo import VersionMemo
from .merge import ChangeKind, MergeResult, RegistryChange, merge_registry
from .registry import ReconcilerRegistry

__all__ = [
    "ChangeKind",
    "CommitResult",
    "ManagedArtifact",
    "MergeResult",
    "PassStatus",
    "RebuildPass",
    "Reconciler",
    "ReconcilerRegistry",
    "ReconcilerState",
    "RegistryChange",
    "VersionMemo",
    "commit_artifact",
    "commit_file",
    "ensure_directory",
    "ensure_symlink",
    "find_unused_backup",
    "merge_registry",
    "trim_directory",
]
