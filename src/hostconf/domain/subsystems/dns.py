"""Name server: zone files under ``/var/named`` and ``/etc/named.conf``."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from hostconf.domain.model import AppProtocol, OperatingSystem
from hostconf.domain.reconciliation import ManagedArtifact

from .base import SubsystemReconciler, find_group

if TYPE_CHECKING:
    from hostconf.domain.model import DnsZone, NetBind
    from hostconf.domain.reconciliation import RebuildPass

log = getLogger(__name__)

ZONE_DIRECTORY = "/var/named"
CONF_FILE = "/etc/named.conf"
NAMED_GROUP = "named"
SERVICE = "named"
ZONE_MODE = 0o640

# Shipped by the bind packages; never trimmed from the zone directory
STATIC_FILES: dict[OperatingSystem, frozenset[str]] = {
    OperatingSystem.CENTOS_5: frozenset(
        {
            "chroot",
            "data",
            "localdomain.zone",
            "localhost.zone",
            "named.broadcast",
            "named.ca",
            "named.ip6.local",
            "named.local",
            "named.zero",
            "slaves",
        }
    ),
    OperatingSystem.CENTOS_7: frozenset(
        {
            "data",
            "dynamic",
            "named.ca",
            "named.empty",
            "named.localhost",
            "named.loopback",
            "slaves",
        }
    ),
}

PACKAGES: dict[OperatingSystem, tuple[str, ...]] = {
    OperatingSystem.CENTOS_5: ("bind", "caching-nameserver"),
    OperatingSystem.CENTOS_7: ("bind",),
}


def render_zone(zone: DnsZone) -> bytes:
    nameservers = [record for record in zone.records if record.record_type == "NS"]
    primary = nameservers[0].destination if nameservers else f"ns.{zone.zone}."
    lines = [
        f"$TTL {zone.ttl}",
        f"@\tIN\tSOA\t{primary}\t{zone.hostmaster} (",
        f"\t\t{zone.serial} ; serial",
        "\t\t3600 ; refresh",
        "\t\t3600 ; retry",
        "\t\t1209600 ; expire",
        f"\t\t{zone.ttl} ; minimum",
        ")",
    ]
    for record in zone.records:
        ttl = "" if record.ttl is None else str(record.ttl)
        data = record.destination
        if record.priority is not None:
            data = f"{record.priority} {data}"
        lines.append(f"{record.domain}\t{ttl}\tIN\t{record.record_type}\t{data}")
    return ("\n".join(lines) + "\n").encode("utf-8")


def _listen_lines(binds: list[NetBind]) -> list[str]:
    v4: dict[int, list[str]] = {}
    v6: dict[int, list[str]] = {}
    for bind in binds:
        by_port = v4 if bind.address.version == 4 else v6
        addresses = by_port.setdefault(bind.port, [])
        if bind.ip_address not in addresses:
            addresses.append(bind.ip_address)
    lines = []
    for keyword, by_port in (("listen-on", v4), ("listen-on-v6", v6)):
        for port in sorted(by_port):
            addresses = " ".join(f"{address};" for address in by_port[port])
            lines.append(f"\t{keyword} port {port} {{ {addresses} }};")
    return lines


def render_named_conf(
    operating_system: OperatingSystem,
    binds: list[NetBind],
    zones: list[DnsZone],
) -> bytes:
    lines = [
        "//",
        "// named.conf",
        "//",
        f"// Generated by {__name__}",
        "//",
        "",
        "options {",
        *_listen_lines(binds),
        f'\tdirectory "{ZONE_DIRECTORY}";',
        '\tdump-file "/var/named/data/cache_dump.db";',
        '\tstatistics-file "/var/named/data/named_stats.txt";',
        '\tmemstatistics-file "/var/named/data/named_mem_stats.txt";',
        "\tallow-transfer { none; };",
        "\tnotify no;",
    ]
    if operating_system is OperatingSystem.CENTOS_7:
        lines += [
            "\tdnssec-enable yes;",
            "\tdnssec-validation yes;",
            '\tmanaged-keys-directory "/var/named/dynamic";',
            '\tpid-file "/run/named/named.pid";',
            '\tsession-keyfile "/run/named/session.key";',
        ]
    lines += [
        "};",
        "",
        "logging {",
        "\tchannel default_debug {",
        '\t\tfile "data/named.run";',
        "\t\tseverity dynamic;",
        "\t};",
        "};",
    ]
    if operating_system is OperatingSystem.CENTOS_7:
        lines += ["", 'zone "." IN {', "\ttype hint;", '\tfile "named.ca";', "};"]
    lines += ["", 'include "/etc/named.rfc1912.zones";']
    for zone in sorted(zones, key=lambda zone: zone.zone):
        lines += [
            "",
            f'zone "{zone.zone}" IN {{',
            "\ttype master;",
            f'\tfile "{zone.file}";',
            "\tallow-query { any; };",
            "\tallow-update { none; };",
            "};",
        ]
    return ("\n".join(lines) + "\n").encode("utf-8")


class DnsReconciler(SubsystemReconciler):
    """Keeps zone files current, re-rendering only zones whose serial moved."""

    name = "dns"
    sources = ("host", "net_bind", "dns_zone", "dns_record", "linux_group")

    _operating_system: OperatingSystem | None = None

    def rebuild(self, rebuild_pass: RebuildPass) -> None:
        with self.context.snapshots() as snapshot:
            host = snapshot.host()
            operating_system = self.require_supported(host)
            self._operating_system = operating_system
            binds = snapshot.net_binds(AppProtocol.DNS)
            if not binds:
                self._uninstall(rebuild_pass, operating_system)
                return
            named_gid = find_group(snapshot.groups(), NAMED_GROUP).gid
            zones = snapshot.dns_zones()

        self._install(rebuild_pass, operating_system)
        zone_directory = self.layout.path(ZONE_DIRECTORY)
        uid = self.layout.root_uid

        files: list[str] = []
        for zone in zones:
            rebuild_pass.record(zone.zone, zone.serial)
            files.append(zone.file)
            path = zone_directory / zone.file
            if rebuild_pass.memo.is_current(zone.zone, zone.serial) and path.exists():
                log.debug("Zone %s unchanged at serial %d", zone.zone, zone.serial)
                continue
            rebuild_pass.commit(
                ManagedArtifact(
                    path=path,
                    content=render_zone(zone),
                    uid=uid,
                    gid=named_gid,
                    mode=ZONE_MODE,
                )
            )
            rebuild_pass.memo.remember(zone.zone, zone.serial)
        rebuild_pass.memo.retain(zone.zone for zone in zones)

        rebuild_pass.commit(
            ManagedArtifact(
                path=self.layout.path(CONF_FILE),
                content=render_named_conf(operating_system, binds, zones),
                uid=uid,
                gid=named_gid,
                mode=ZONE_MODE,
            )
        )
        rebuild_pass.trim(
            zone_directory, files, owned=True, allow=STATIC_FILES[operating_system]
        )

    def _install(self, rebuild_pass: RebuildPass, operating_system: OperatingSystem) -> None:
        packages = self.context.packages
        installed = [package for package in PACKAGES[operating_system] if packages.install(package)]
        if installed:
            log.info("Installed %s", ", ".join(installed))
            self.context.services.enable(SERVICE)
            rebuild_pass.mark_changed()

    def _uninstall(self, rebuild_pass: RebuildPass, operating_system: OperatingSystem) -> None:
        rebuild_pass.memo.clear()
        if not self.context.uninstall_enabled:
            return
        for package in reversed(PACKAGES[operating_system]):
            if self.context.packages.remove(package):
                log.info("Removed %s, no DNS binds on this host", package)

    def reload(self) -> None:
        if self._operating_system is OperatingSystem.CENTOS_5:
            self.context.services.restart(SERVICE)
        else:
            self.context.services.reload_or_restart(SERVICE)
