"""Read-only queries for one host, backed by a SQLAlchemy session."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import or_, select

from hostconf.adapters.sqlalchemy.mappings import (
    billing_package_table,
    dns_record_table,
    dns_zone_table,
    email_address_table,
    email_domain_table,
    ftp_guest_user_table,
    ftp_private_server_table,
    host_table,
    httpd_site_table,
    linux_group_member_table,
    linux_group_table,
    net_bind_table,
    smtp_relay_table,
)
from hostconf.domain.errors import SnapshotError
from hostconf.domain.model import (
    AppProtocol,
    BillingPackage,
    DnsRecord,
    DnsZone,
    EmailDomain,
    EmailLimit,
    FtpPrivateServer,
    Host,
    HttpdSite,
    LinuxGroup,
    NetBind,
    NetProtocol,
    OperatingSystem,
    SmtpRelay,
    SmtpRelayType,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.orm import Session


def _limit(burst: int | None, rate: float | None) -> EmailLimit | None:
    # unlimited when either half is missing
    if burst is None or rate is None:
        return None
    return EmailLimit(burst, rate)


class SqlAlchemyHostRepository:
    def __init__(self, session: Session, hostname: str) -> None:
        self.session = session
        self.hostname = hostname

    def host(self) -> Host:
        row = self.session.execute(
            select(host_table).where(host_table.c.hostname == self.hostname)
        ).one_or_none()
        if row is None:
            raise SnapshotError(f"Host not found in data store: {self.hostname}")
        return Host(
            hostname=row.hostname,
            operating_system=OperatingSystem(row.operating_system),
            time_zone=row.time_zone,
            uid_min=row.uid_min,
            gid_min=row.gid_min,
            gid_max=row.gid_max,
            restrict_outbound_email=bool(row.restrict_outbound_email),
        )

    def net_binds(self, app_protocol: AppProtocol | None = None) -> list[NetBind]:
        stmt = (
            select(
                net_bind_table,
                ftp_private_server_table.c.hostname,
                ftp_private_server_table.c.ftp_username,
                ftp_private_server_table.c.logfile,
                ftp_private_server_table.c.allow_anonymous,
            )
            .outerjoin(
                ftp_private_server_table,
                net_bind_table.c.private_ftp_server == ftp_private_server_table.c.id,
            )
            .where(net_bind_table.c.host == self.hostname)
            .order_by(net_bind_table.c.id)
        )
        if app_protocol is not None:
            stmt = stmt.where(net_bind_table.c.app_protocol == app_protocol.value)
        binds: list[NetBind] = []
        for row in self.session.execute(stmt).mappings():
            private = None
            if row["private_ftp_server"] is not None:
                private = FtpPrivateServer(
                    hostname=row["hostname"],
                    ftp_username=row["ftp_username"],
                    logfile=row["logfile"],
                    allow_anonymous=bool(row["allow_anonymous"]),
                )
            binds.append(
                NetBind(
                    id=row["id"],
                    ip_address=row["ip_address"],
                    port=row["port"],
                    app_protocol=AppProtocol(row["app_protocol"]),
                    net_protocol=NetProtocol(row["net_protocol"]),
                    fail2ban=bool(row["fail2ban"]),
                    tcp_redirect=bool(row["tcp_redirect"]),
                    private_ftp=private,
                )
            )
        return binds

    def dns_zones(self) -> list[DnsZone]:
        records: dict[str, list[DnsRecord]] = {}
        for row in self.session.execute(
            select(dns_record_table).order_by(dns_record_table.c.zone, dns_record_table.c.id)
        ):
            records.setdefault(row.zone, []).append(
                DnsRecord(
                    domain=row.domain,
                    record_type=row.record_type,
                    destination=row.destination,
                    priority=row.priority,
                    ttl=row.ttl,
                )
            )
        return [
            DnsZone(
                zone=row.zone,
                file=row.file,
                serial=row.serial,
                hostmaster=row.hostmaster,
                ttl=row.ttl,
                records=tuple(records.get(row.zone, ())),
            )
            for row in self.session.execute(select(dns_zone_table).order_by(dns_zone_table.c.zone))
        ]

    def ftp_guest_users(self) -> list[str]:
        stmt = (
            select(ftp_guest_user_table.c.username)
            .where(ftp_guest_user_table.c.host == self.hostname)
            .order_by(ftp_guest_user_table.c.username)
        )
        return list(self.session.execute(stmt).scalars())

    def groups(self) -> list[LinuxGroup]:
        members: dict[int, list[str]] = {}
        member_stmt = (
            select(linux_group_member_table.c.group_id, linux_group_member_table.c.username)
            .join(linux_group_table, linux_group_table.c.id == linux_group_member_table.c.group_id)
            .where(linux_group_table.c.host == self.hostname)
            .order_by(linux_group_member_table.c.username)
        )
        for group_id, username in self.session.execute(member_stmt):
            members.setdefault(group_id, []).append(username)
        stmt = (
            select(linux_group_table)
            .where(linux_group_table.c.host == self.hostname)
            .order_by(linux_group_table.c.gid, linux_group_table.c.name)
        )
        return [
            LinuxGroup(name=row.name, gid=row.gid, members=tuple(members.get(row.id, ())))
            for row in self.session.execute(stmt)
        ]

    def email_domains(self) -> list[EmailDomain]:
        addresses: dict[int, list[str]] = {}
        address_stmt = (
            select(email_address_table.c.domain_id, email_address_table.c.address)
            .join(email_domain_table, email_domain_table.c.id == email_address_table.c.domain_id)
            .where(email_domain_table.c.host == self.hostname)
        )
        for domain_id, address in self.session.execute(address_stmt):
            addresses.setdefault(domain_id, []).append(address)
        stmt = (
            select(email_domain_table)
            .where(email_domain_table.c.host == self.hostname)
            .order_by(email_domain_table.c.domain)
        )
        return [
            EmailDomain(
                domain=row.domain,
                package=row.package,
                addresses=tuple(sorted(addresses.get(row.id, ()))),
            )
            for row in self.session.execute(stmt)
        ]

    def billing_packages(self, names: Iterable[str]) -> dict[str, BillingPackage]:
        wanted = sorted(set(names))
        if not wanted:
            return {}
        stmt = select(billing_package_table).where(billing_package_table.c.name.in_(wanted))
        return {
            row.name: BillingPackage(
                name=row.name,
                email_in=_limit(row.email_in_burst, row.email_in_rate),
                email_out=_limit(row.email_out_burst, row.email_out_rate),
                email_relay=_limit(row.email_relay_burst, row.email_relay_rate),
            )
            for row in self.session.execute(stmt)
        }

    def smtp_relays(self) -> list[SmtpRelay]:
        stmt = (
            select(smtp_relay_table)
            .where(
                or_(
                    smtp_relay_table.c.host == self.hostname,
                    smtp_relay_table.c.host.is_(None),
                )
            )
            .order_by(smtp_relay_table.c.id)
        )
        return [
            SmtpRelay(host=row.relay_host, relay_type=SmtpRelayType(row.relay_type))
            for row in self.session.execute(stmt)
        ]

    def httpd_sites(self) -> list[HttpdSite]:
        stmt = (
            select(httpd_site_table)
            .where(httpd_site_table.c.host == self.hostname)
            .order_by(httpd_site_table.c.name)
        )
        return [
            HttpdSite(
                name=row.name,
                uid=row.uid,
                gid=row.gid,
                anonymous_ftp=bool(row.anonymous_ftp),
                disabled=bool(row.disabled),
            )
            for row in self.session.execute(stmt)
        ]
