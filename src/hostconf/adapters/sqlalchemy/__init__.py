"""SQLAlchemy adapter package for hostconf."""

from __future__ import annotations

from .mappings import TABLE_NAMES, create_all_tables, metadata
from .repositories import SqlAlchemyHostRepository
from .unit_of_work import (
    SqlAlchemyHostSnapshot,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    snapshot_factory,
    startup,
)

__all__ = [
    "TABLE_NAMES",
    "SqlAlchemyHostRepository",
    "SqlAlchemyHostSnapshot",
    "StartupError",
    "configured_engine",
    "create_all_tables",
    "is_started",
    "metadata",
    "shutdown",
    "snapshot_factory",
    "startup",
]
