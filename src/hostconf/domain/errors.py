"""Error taxonomy for reconciliation passes.

``OSError`` raised by the commit primitive is not wrapped; I/O failures
surface unchanged and the engine records them as failed passes.
"""

from __future__ import annotations


class ReconcileError(RuntimeError):
    """Base class for failures raised while computing or applying desired state."""


class UnsupportedEnvironmentError(ReconcileError):
    """Raised when the host variant does not support a subsystem."""

    def __init__(self, subsystem: str, operating_system: str) -> None:
        super().__init__(f"{subsystem}: unsupported operating system {operating_system!r}")
        self.subsystem = subsystem
        self.operating_system = operating_system


class MergeSafetyError(ReconcileError):
    """Raised when a registry merge would touch an entry it is not allowed to change."""

    def __init__(self, entity: str, message: str) -> None:
        super().__init__(f"{entity}: {message}")
        self.entity = entity


class SnapshotError(ReconcileError):
    """Raised when the authoritative snapshot is internally inconsistent."""
