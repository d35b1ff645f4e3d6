"""Authoritative rows as read from the data store.

These are plain immutable value objects; adapters build them and subsystem
reconcilers turn them into managed artifacts.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import StrEnum


class OperatingSystem(StrEnum):
    CENTOS_5 = "centos-5"
    CENTOS_5_DOM0 = "centos-5-dom0"
    CENTOS_7 = "centos-7"
    CENTOS_7_DOM0 = "centos-7-dom0"

    @property
    def is_dom0(self) -> bool:
        return self.value.endswith("-dom0")


class AppProtocol(StrEnum):
    DNS = "dns"
    FTP = "ftp"
    IMAP2 = "imap2"
    MILTER = "milter"
    POP3 = "pop3"
    SIMAP = "simap"
    SMTP = "smtp"
    SMTPS = "smtps"
    SPOP3 = "spop3"
    SSH = "ssh"
    SUBMISSION = "submission"


class NetProtocol(StrEnum):
    TCP = "tcp"
    UDP = "udp"


class SmtpRelayType(StrEnum):
    ALLOW_RELAY = "allow_relay"
    DENY = "deny"
    DENY_SPAM = "deny_spam"


@dataclass(frozen=True, slots=True)
class IdRange:
    """Inclusive numeric interval of identifiers the daemon may manage."""

    minimum: int
    maximum: int

    def __post_init__(self) -> None:
        if self.minimum > self.maximum:
            raise ValueError(f"Invalid id range: {self.minimum} > {self.maximum}")

    def __contains__(self, ident: object) -> bool:
        return isinstance(ident, int) and self.minimum <= ident <= self.maximum


@dataclass(frozen=True, slots=True, kw_only=True)
class Host:
    hostname: str
    operating_system: OperatingSystem
    time_zone: str
    uid_min: int
    gid_min: int
    gid_max: int
    restrict_outbound_email: bool = False

    @property
    def managed_gids(self) -> IdRange:
        return IdRange(self.gid_min, self.gid_max)


@dataclass(frozen=True, slots=True, kw_only=True)
class FtpPrivateServer:
    hostname: str
    ftp_username: str
    logfile: str
    allow_anonymous: bool = False


@dataclass(frozen=True, slots=True, kw_only=True)
class NetBind:
    id: int
    ip_address: str
    port: int
    app_protocol: AppProtocol
    net_protocol: NetProtocol = NetProtocol.TCP
    fail2ban: bool = True
    tcp_redirect: bool = False
    private_ftp: FtpPrivateServer | None = None

    @property
    def address(self) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
        return ipaddress.ip_address(self.ip_address)

    @property
    def is_loopback(self) -> bool:
        return self.address.is_loopback

    @property
    def is_unspecified(self) -> bool:
        return self.address.is_unspecified


@dataclass(frozen=True, slots=True, kw_only=True)
class DnsRecord:
    domain: str
    record_type: str
    destination: str
    priority: int | None = None
    ttl: int | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class DnsZone:
    zone: str
    file: str
    serial: int
    hostmaster: str
    ttl: int = 3600
    records: tuple[DnsRecord, ...] = ()

    @property
    def is_arpa(self) -> bool:
        return self.zone.endswith(".in-addr.arpa") or self.zone.endswith(".ip6.arpa")


@dataclass(frozen=True, slots=True, kw_only=True)
class LinuxGroup:
    name: str
    gid: int
    members: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class EmailLimit:
    burst: int
    rate: float


@dataclass(frozen=True, slots=True, kw_only=True)
class BillingPackage:
    name: str
    email_in: EmailLimit | None = None
    email_out: EmailLimit | None = None
    email_relay: EmailLimit | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class EmailDomain:
    domain: str
    package: str
    addresses: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True, kw_only=True)
class SmtpRelay:
    host: str
    relay_type: SmtpRelayType


@dataclass(frozen=True, slots=True, kw_only=True)
class HttpdSite:
    name: str
    uid: int
    gid: int
    anonymous_ftp: bool = False
    disabled: bool = False
