from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.pool import StaticPool

from hostconf.adapters.sqlalchemy import create_all_tables
from hostconf.adapters.sqlalchemy.unit_of_work import shutdown, startup
from hostconf.domain.reconciliation import RebuildPass, VersionMemo
from hostconf.domain.subsystems import HostLayout, SubsystemContext
from tests.helpers.fakes import (
    FakeHostData,
    FakePackageManager,
    FakeServiceManager,
    FakeSnapshot,
    FakeTimeZoneControl,
)

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def started_engine(sqlite_engine: Engine) -> Iterator[Engine]:
    startup(engine=sqlite_engine, force=True)
    try:
        yield sqlite_engine
    finally:
        shutdown()


@pytest.fixture
def layout(tmp_path: Path) -> HostLayout:
    root = tmp_path / "root"
    root.mkdir()
    return HostLayout(root=root, root_uid=os.getuid(), root_gid=os.getgid())


@pytest.fixture
def host_data() -> FakeHostData:
    return FakeHostData()


@pytest.fixture
def services() -> FakeServiceManager:
    return FakeServiceManager()


@pytest.fixture
def packages() -> FakePackageManager:
    return FakePackageManager()


@pytest.fixture
def time_zones() -> FakeTimeZoneControl:
    return FakeTimeZoneControl()


@pytest.fixture
def context(
    host_data: FakeHostData,
    layout: HostLayout,
    services: FakeServiceManager,
    packages: FakePackageManager,
    time_zones: FakeTimeZoneControl,
) -> SubsystemContext:
    return SubsystemContext(
        snapshots=lambda: FakeSnapshot(host_data),
        layout=layout,
        services=services,
        packages=packages,
        time_zones=time_zones,
    )


@pytest.fixture
def new_pass() -> Callable[[str], RebuildPass]:
    """Hand out passes sharing one memo per reconciler name, as the engine does."""

    memos: dict[str, VersionMemo] = {}

    def factory(name: str = "test") -> RebuildPass:
        memo = memos.setdefault(name, VersionMemo())
        return RebuildPass(reconciler=name, memo=memo)

    return factory
