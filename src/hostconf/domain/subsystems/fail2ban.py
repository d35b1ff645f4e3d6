"""Intrusion-ban jails: ``/etc/fail2ban/jail.d/50-<jail>.local`` per active jail."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from hostconf.domain.model import AppProtocol, OperatingSystem
from hostconf.domain.reconciliation import ManagedArtifact

from .base import SubsystemReconciler

if TYPE_CHECKING:
    from hostconf.domain.model import NetBind
    from hostconf.domain.reconciliation import RebuildPass

log = getLogger(__name__)

JAIL_DIRECTORY = "/etc/fail2ban/jail.d"
SERVICE = "fail2ban.service"
SERVER_PACKAGE = "fail2ban-server"
FIREWALLD_PACKAGE = "firewalld"
FIREWALLD_ACTION_PACKAGE = "fail2ban-firewalld"


@dataclass(frozen=True, slots=True, kw_only=True)
class Jail:
    name: str
    protocols: frozenset[AppProtocol]
    remove_legacy_conf: bool = True
    filter_package: str | None = None

    @property
    def filename(self) -> str:
        return f"50-{self.name}.local"

    @property
    def legacy_filename(self) -> str | None:
        return f"50-{self.name}.conf" if self.remove_legacy_conf else None


JAILS: tuple[Jail, ...] = (
    Jail(
        name="cyrus-imap",
        protocols=frozenset(
            {AppProtocol.POP3, AppProtocol.IMAP2, AppProtocol.SIMAP, AppProtocol.SPOP3}
        ),
    ),
    Jail(
        name="sendmail-auth",
        protocols=frozenset({AppProtocol.SMTP, AppProtocol.SMTPS, AppProtocol.SUBMISSION}),
    ),
    Jail(
        name="sendmail-disconnect",
        protocols=frozenset({AppProtocol.SMTP, AppProtocol.SMTPS, AppProtocol.SUBMISSION}),
        remove_legacy_conf=False,
        filter_package="fail2ban-filter-sendmail-disconnect",
    ),
    Jail(name="sshd", protocols=frozenset({AppProtocol.SSH})),
)


def jail_ports(binds: list[NetBind], *, zones_apply: bool) -> dict[str, list[int]]:
    """Sorted unique ports per jail for non-loopback binds.

    With ``zones_apply`` only binds in a fail2ban firewall zone count; without a
    firewall every port is covered.
    """

    ports: dict[str, set[int]] = {}
    for bind in binds:
        if bind.is_loopback:
            continue
        if zones_apply and not bind.fail2ban:
            continue
        for jail in JAILS:
            if bind.app_protocol in jail.protocols:
                ports.setdefault(jail.name, set()).add(bind.port)
    return {name: sorted(found) for name, found in ports.items()}


def render_jail(jail: Jail, ports: list[int]) -> bytes:
    return (
        "#\n"
        f"# Generated by {__name__}\n"
        "#\n"
        f"[{jail.name}]\n"
        "enabled = true\n"
        f"port = {','.join(str(port) for port in ports)}\n"
    ).encode("utf-8")


class Fail2banReconciler(SubsystemReconciler):
    name = "fail2ban"
    sources = ("host", "net_bind")
    supported = frozenset({OperatingSystem.CENTOS_7})

    def rebuild(self, rebuild_pass: RebuildPass) -> None:
        with self.context.snapshots() as snapshot:
            self.require_supported(snapshot.host())
            binds = snapshot.net_binds()

        packages = self.context.packages
        services = self.context.services
        firewalld = packages.is_installed(FIREWALLD_PACKAGE)
        ports = jail_ports(binds, zones_apply=firewalld)
        log.debug("Jail ports: %s", ports)

        if ports:
            if packages.install(SERVER_PACKAGE):
                rebuild_pass.mark_changed()
            if firewalld and packages.install(FIREWALLD_ACTION_PACKAGE):
                rebuild_pass.mark_changed()
            installed = True
        else:
            installed = packages.is_installed(SERVER_PACKAGE)

        if installed:
            self._write_jails(rebuild_pass, ports)

        if not ports:
            if installed:
                services.stop(SERVICE)
                services.disable(SERVICE)
            return
        services.enable(SERVICE)
        if rebuild_pass.changed:
            services.restart(SERVICE)
        else:
            services.start(SERVICE)

    def _write_jails(self, rebuild_pass: RebuildPass, ports: dict[str, list[int]]) -> None:
        jail_directory = self.layout.path(JAIL_DIRECTORY)
        required: set[str] = set()
        filters: set[str] = set()
        for jail in JAILS:
            if jail.filter_package is not None:
                filters.add(jail.filter_package)
            selected = ports.get(jail.name)
            if selected is not None and jail.filter_package is not None:
                required.add(jail.filter_package)
                if self.context.packages.install(jail.filter_package):
                    rebuild_pass.mark_changed()
            rebuild_pass.commit(
                ManagedArtifact(
                    path=jail_directory / jail.filename,
                    content=None if selected is None else render_jail(jail, selected),
                    uid=self.layout.root_uid,
                    gid=self.layout.root_gid,
                    mode=0o644,
                )
            )
            if jail.legacy_filename is not None:
                rebuild_pass.commit(
                    ManagedArtifact(
                        path=jail_directory / jail.legacy_filename,
                        content=None,
                        uid=self.layout.root_uid,
                        gid=self.layout.root_gid,
                        mode=0o644,
                    )
                )
        if self.context.uninstall_enabled:
            for package in sorted(filters - required):
                if self.context.packages.remove(package):
                    rebuild_pass.mark_changed()
