"""Mail filter (milter) limits: ``/etc/aoserv/jilter/jilter.properties``.

The file lists which package owns each local domain, the known addresses, the
host's own IPs, SMTP relay rules and the per-package inbound, outbound and
relay rate limits. It is only managed while exactly one milter bind exists.
"""

from __future__ import annotations

import os
from logging import getLogger
from typing import TYPE_CHECKING

from hostconf.domain.errors import SnapshotError
from hostconf.domain.model import AppProtocol, OperatingSystem, SmtpRelayType
from hostconf.domain.reconciliation import ManagedArtifact

from .base import SubsystemReconciler, find_group

if TYPE_CHECKING:
    from hostconf.domain.model import (
        BillingPackage,
        EmailDomain,
        EmailLimit,
        NetBind,
        SmtpRelay,
    )
    from hostconf.domain.reconciliation import RebuildPass

log = getLogger(__name__)

PROPERTIES_FILE = "/etc/aoserv/jilter/jilter.properties"
PACKAGE = "aoserv-jilter"
JILTER_GROUP = "aoserv-jilter"
PROPERTIES_MODE = 0o640


def _limit_lines(prefix: str, package: str, limit: EmailLimit | None) -> list[str]:
    if limit is None:
        return []
    return [
        f"{prefix}.{package}.burst={limit.burst}",
        f"{prefix}.{package}.rate={limit.rate:g}",
    ]


def render_properties(
    *,
    milter: NetBind,
    restrict_outbound_email: bool,
    domains: list[EmailDomain],
    packages: dict[str, BillingPackage],
    ips: list[str],
    relays: list[SmtpRelay],
) -> bytes:
    lines = [
        f"# This file is automatically generated by {__name__}",
        f"listen.ip={milter.ip_address}",
        f"listen.port={milter.port}",
        f"restrict_outbound_email={str(restrict_outbound_email).lower()}",
    ]
    for domain in sorted(domains, key=lambda domain: domain.domain):
        lines.append(f"domainPackages.{domain.domain}={domain.package}")
        lines.append(f"domainAddresses.{domain.domain}={','.join(sorted(set(domain.addresses)))}")
    lines.append(f"ips={','.join(sorted(set(ips)))}")
    for relay_type, key in (
        (SmtpRelayType.DENY, "denies"),
        (SmtpRelayType.DENY_SPAM, "denySpams"),
        (SmtpRelayType.ALLOW_RELAY, "allowRelays"),
    ):
        hosts = sorted({relay.host for relay in relays if relay.relay_type is relay_type})
        lines.append(f"{key}={','.join(hosts)}")
    for name in sorted(packages):
        package = packages[name]
        lines += _limit_lines("emailInLimit", name, package.email_in)
        lines += _limit_lines("emailOutLimit", name, package.email_out)
        lines += _limit_lines("emailRelayLimit", name, package.email_relay)
    return ("\n".join(lines) + "\n").encode("utf-8")


class MailFilterReconciler(SubsystemReconciler):
    name = "mail-filter"
    sources = (
        "host",
        "net_bind",
        "email_domain",
        "email_address",
        "smtp_relay",
        "billing_package",
        "linux_group",
    )

    def rebuild(self, rebuild_pass: RebuildPass) -> None:
        with self.context.snapshots() as snapshot:
            host = snapshot.host()
            operating_system = self.require_supported(host)
            milters = snapshot.net_binds(AppProtocol.MILTER)
            if len(milters) > 1:
                raise SnapshotError(
                    "More than one milter found in net_bind, refusing to configure the mail filter"
                )
            if not milters:
                self._uninstall(rebuild_pass)
                return
            domains = snapshot.email_domains()
            package_names = {domain.package for domain in domains}
            packages = snapshot.billing_packages(package_names)
            missing = package_names.difference(packages)
            if missing:
                raise SnapshotError(f"Unable to find billing package: {', '.join(sorted(missing))}")
            ips = [bind.ip_address for bind in snapshot.net_binds() if not bind.is_unspecified]
            relays = snapshot.smtp_relays()
            if operating_system is OperatingSystem.CENTOS_7:
                gid = find_group(snapshot.groups(), JILTER_GROUP).gid
            else:
                gid = self.layout.root_gid

        if self.context.packages.install(PACKAGE):
            rebuild_pass.mark_changed()
        rebuild_pass.commit(
            ManagedArtifact(
                path=self.layout.path(PROPERTIES_FILE),
                content=render_properties(
                    milter=milters[0],
                    restrict_outbound_email=host.restrict_outbound_email,
                    domains=domains,
                    packages=packages,
                    ips=ips,
                    relays=relays,
                ),
                uid=self.layout.root_uid,
                gid=gid,
                mode=PROPERTIES_MODE,
            )
        )

    def _uninstall(self, rebuild_pass: RebuildPass) -> None:
        if not self.context.uninstall_enabled:
            return
        if self.context.packages.remove(PACKAGE):
            rebuild_pass.mark_changed()
        properties = self.layout.path(PROPERTIES_FILE)
        for leftover in (properties, properties.with_name(properties.name + ".rpmsave")):
            if leftover.exists():
                leftover.unlink()
                log.info("Removed %s", leftover)
                rebuild_pass.mark_changed()
        directory = properties.parent
        if directory.is_dir() and not os.listdir(directory):
            directory.rmdir()
            log.info("Removed %s", directory)
