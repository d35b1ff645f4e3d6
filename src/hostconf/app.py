"""Application orchestration: wire adapters into reconcilers and run them."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from hostconf.adapters.notifier import HttpChangeNotifier, LocalChangeNotifier
from hostconf.adapters.sqlalchemy.unit_of_work import is_started, snapshot_factory, startup
from hostconf.adapters.system import (
    RestoreconRelabeler,
    SystemctlServiceManager,
    TimedatectlTimeZoneControl,
    YumPackageManager,
)
from hostconf.config import get_daemon_config, get_notifier_config
from hostconf.domain.reconciliation import ReconcilerRegistry
from hostconf.domain.subsystems import SUBSYSTEMS, HostLayout, SubsystemContext

if TYPE_CHECKING:
    from threading import Event

    from hostconf.config import DaemonConfig, NotifierConfig
    from hostconf.domain.model import Host
    from hostconf.domain.ports import (
        PackageManager,
        Relabeler,
        ServiceManager,
        SnapshotFactory,
        TimeZoneControl,
    )
    from hostconf.domain.reconciliation import RebuildPass


log = getLogger(__name__)


def build_registry(
    config: DaemonConfig,
    host: Host,
    *,
    context: SubsystemContext,
    notifier: LocalChangeNotifier,
    relabeler: Relabeler | None = None,
) -> ReconcilerRegistry:
    """Create one reconciler per enabled subsystem that manages ``host``'s variant."""

    registry = ReconcilerRegistry(
        notifier=notifier,
        relabeler=relabeler,
        debounce_seconds=config.debounce_seconds,
        slow_rebuild_seconds=config.slow_rebuild_seconds or None,
    )
    for subsystem_type in SUBSYSTEMS:
        if not config.is_enabled(subsystem_type.name):
            log.debug("%s: disabled by configuration", subsystem_type.name)
            continue
        if not subsystem_type.applies_to(host.operating_system):
            log.info("%s: not managed on %s", subsystem_type.name, host.operating_system)
            continue
        subsystem = subsystem_type(context)
        registry.add(
            subsystem.name,
            subsystem.rebuild,
            sources=subsystem.sources,
            reload=subsystem.reload,
        )
    return registry


@dataclass(slots=True)
class Daemon:
    registry: ReconcilerRegistry
    notifier: LocalChangeNotifier
    feed: HttpChangeNotifier | None = None

    def start(self) -> None:
        self.registry.start()
        if self.feed is not None:
            self.feed.start()

    def stop(self) -> None:
        if self.feed is not None:
            self.feed.stop()
        self.registry.shutdown()

    def run_once(self) -> list[RebuildPass]:
        """Run every reconciler once in the calling thread, then shut down."""

        try:
            return [reconciler.rebuild_now() for reconciler in self.registry]
        finally:
            self.stop()

    def run_until(self, stop: Event) -> None:
        self.start()
        try:
            stop.wait()
        finally:
            log.info("Shutting down")
            self.stop()


def create_daemon(
    config: DaemonConfig | None = None,
    *,
    notifier_config: NotifierConfig | None = None,
    snapshots: SnapshotFactory | None = None,
    services: ServiceManager | None = None,
    packages: PackageManager | None = None,
    relabeler: Relabeler | None = None,
    time_zones: TimeZoneControl | None = None,
    layout: HostLayout | None = None,
) -> Daemon:
    """Build a daemon from configuration, defaulting every collaborator to the real host."""

    effective_config = config or get_daemon_config()
    if snapshots is None:
        if not is_started():
            startup()
        snapshots = snapshot_factory(effective_config.hostname)
    with snapshots() as snapshot:
        host = snapshot.host()
    log.info("Managing %s (%s)", host.hostname, host.operating_system)

    context = SubsystemContext(
        snapshots=snapshots,
        layout=layout or HostLayout(root=effective_config.root),
        services=services or SystemctlServiceManager(),
        packages=packages or YumPackageManager(),
        time_zones=time_zones or TimedatectlTimeZoneControl(),
        uninstall_enabled=effective_config.uninstall_enabled,
    )
    notifier = LocalChangeNotifier()
    registry = build_registry(
        effective_config,
        host,
        context=context,
        notifier=notifier,
        relabeler=relabeler or RestoreconRelabeler(),
    )

    feed_config = notifier_config or get_notifier_config()
    feed = HttpChangeNotifier(feed_config, local=notifier) if feed_config else None
    return Daemon(registry=registry, notifier=notifier, feed=feed)
