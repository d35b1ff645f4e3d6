"""SQLAlchemy-backed host snapshots.

Each snapshot opens its own session and holds one read transaction for its
whole lifetime, so every query of a rebuild pass sees the same state of the
store. The engine is shared; reconcilers read concurrently through it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from hostconf.adapters.sqlalchemy.mappings import create_all_tables
from hostconf.adapters.sqlalchemy.repositories import SqlAlchemyHostRepository
from hostconf.config.storage import get_database_config

if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType

    from sqlalchemy.engine import Engine

    from hostconf.domain.model import (
        AppProtocol,
        BillingPackage,
        DnsZone,
        EmailDomain,
        Host,
        HttpdSite,
        LinuxGroup,
        NetBind,
        SmtpRelay,
    )
    from hostconf.domain.ports import SnapshotFactory


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy snapshot is requested before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._session_factory = None
        self._engine = value

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._engine is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call hostconf.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a snapshot."
            )
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self._session_factory


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    create_schema: bool = False,
    force: bool = False,
) -> None:
    """Initialise the SQLAlchemy engine and session factory."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or create_engine(
        database_uri or get_database_config().uri,
        future=True,
        pool_pre_ping=True,
    )
    if create_schema:
        create_all_tables(resolved_engine)
    _STATE.engine = resolved_engine


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    """Return whether the adapter has been initialised."""

    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class SqlAlchemyHostSnapshot:
    """Consistent read-only view of one host's rows."""

    def __init__(self, hostname: str) -> None:
        self.hostname = hostname
        self.session_factory: sessionmaker[Session] = _STATE.session_factory
        self._session: Session | None = None
        self._repository: SqlAlchemyHostRepository | None = None

    def __enter__(self) -> SqlAlchemyHostSnapshot:
        self._session = self.session_factory()
        self._session.begin()
        self._repository = SqlAlchemyHostRepository(self._session, self.hostname)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if self._session is not None:
            self._session.rollback()
            self._session.close()
        self._session = None
        self._repository = None
        return False

    @property
    def repository(self) -> SqlAlchemyHostRepository:
        if self._repository is None:
            raise RuntimeError("Snapshot is not active; use it as a context manager")
        return self._repository

    def host(self) -> Host:
        return self.repository.host()

    def net_binds(self, app_protocol: AppProtocol | None = None) -> list[NetBind]:
        return self.repository.net_binds(app_protocol)

    def dns_zones(self) -> list[DnsZone]:
        return self.repository.dns_zones()

    def ftp_guest_users(self) -> list[str]:
        return self.repository.ftp_guest_users()

    def groups(self) -> list[LinuxGroup]:
        return self.repository.groups()

    def email_domains(self) -> list[EmailDomain]:
        return self.repository.email_domains()

    def billing_packages(self, names: Iterable[str]) -> dict[str, BillingPackage]:
        return self.repository.billing_packages(names)

    def smtp_relays(self) -> list[SmtpRelay]:
        return self.repository.smtp_relays()

    def httpd_sites(self) -> list[HttpdSite]:
        return self.repository.httpd_sites()


def snapshot_factory(hostname: str) -> SnapshotFactory:
    """Return a callable that opens a fresh snapshot for ``hostname``."""

    def open_snapshot() -> SqlAlchemyHostSnapshot:
        return SqlAlchemyHostSnapshot(hostname)

    return open_snapshot
