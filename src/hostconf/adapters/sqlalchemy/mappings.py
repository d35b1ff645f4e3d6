"""SQLAlchemy table metadata mirroring the master's schema.

The daemon only reads these tables; the master owns the schema and its
migrations. ``create_all_tables`` exists for local stores and tests.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

metadata = MetaData()

host_table = Table(
    "host",
    metadata,
    Column("hostname", String(255), primary_key=True),
    Column("operating_system", String(32), nullable=False),
    Column("time_zone", String(64), nullable=False),
    Column("uid_min", Integer, nullable=False),
    Column("gid_min", Integer, nullable=False),
    Column("gid_max", Integer, nullable=False),
    Column("restrict_outbound_email", Boolean, nullable=False, default=False),
)

ftp_private_server_table = Table(
    "ftp_private_server",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("hostname", String(255), nullable=False),
    Column("ftp_username", String(32), nullable=False),
    Column("logfile", String(255), nullable=False),
    Column("allow_anonymous", Boolean, nullable=False, default=False),
)

net_bind_table = Table(
    "net_bind",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("host", String(255), ForeignKey("host.hostname"), nullable=False, index=True),
    Column("ip_address", String(45), nullable=False),
    Column("port", Integer, nullable=False),
    Column("app_protocol", String(32), nullable=False),
    Column("net_protocol", String(8), nullable=False, default="tcp"),
    Column("fail2ban", Boolean, nullable=False, default=True),
    Column("tcp_redirect", Boolean, nullable=False, default=False),
    Column("private_ftp_server", Integer, ForeignKey("ftp_private_server.id"), nullable=True),
)

ftp_guest_user_table = Table(
    "ftp_guest_user",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("host", String(255), ForeignKey("host.hostname"), nullable=False, index=True),
    Column("username", String(32), nullable=False),
    UniqueConstraint("host", "username"),
)

dns_zone_table = Table(
    "dns_zone",
    metadata,
    Column("zone", String(255), primary_key=True),
    Column("file", String(255), nullable=False, unique=True),
    Column("serial", Integer, nullable=False),
    Column("hostmaster", String(255), nullable=False),
    Column("ttl", Integer, nullable=False, default=3600),
)

dns_record_table = Table(
    "dns_record",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("zone", String(255), ForeignKey("dns_zone.zone"), nullable=False, index=True),
    Column("domain", String(255), nullable=False),
    Column("record_type", String(16), nullable=False),
    Column("destination", String(255), nullable=False),
    Column("priority", Integer, nullable=True),
    Column("ttl", Integer, nullable=True),
)

linux_group_table = Table(
    "linux_group",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("host", String(255), ForeignKey("host.hostname"), nullable=False, index=True),
    Column("name", String(32), nullable=False),
    Column("gid", Integer, nullable=False),
    UniqueConstraint("host", "name"),
)

linux_group_member_table = Table(
    "linux_group_member",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("group_id", Integer, ForeignKey("linux_group.id"), nullable=False, index=True),
    Column("username", String(32), nullable=False),
    UniqueConstraint("group_id", "username"),
)

billing_package_table = Table(
    "billing_package",
    metadata,
    Column("name", String(255), primary_key=True),
    Column("email_in_burst", Integer, nullable=True),
    Column("email_in_rate", Float, nullable=True),
    Column("email_out_burst", Integer, nullable=True),
    Column("email_out_rate", Float, nullable=True),
    Column("email_relay_burst", Integer, nullable=True),
    Column("email_relay_rate", Float, nullable=True),
)

email_domain_table = Table(
    "email_domain",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("host", String(255), ForeignKey("host.hostname"), nullable=False, index=True),
    Column("domain", String(255), nullable=False),
    Column("package", String(255), ForeignKey("billing_package.name"), nullable=False),
    UniqueConstraint("host", "domain"),
)

email_address_table = Table(
    "email_address",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("domain_id", Integer, ForeignKey("email_domain.id"), nullable=False, index=True),
    Column("address", String(255), nullable=False),
    UniqueConstraint("domain_id", "address"),
)

smtp_relay_table = Table(
    "smtp_relay",
    metadata,
    Column("id", Integer, primary_key=True),
    # NULL host applies to every host
    Column("host", String(255), ForeignKey("host.hostname"), nullable=True, index=True),
    Column("relay_host", String(255), nullable=False),
    Column("relay_type", String(16), nullable=False),
)

httpd_site_table = Table(
    "httpd_site",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("host", String(255), ForeignKey("host.hostname"), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("uid", Integer, nullable=False),
    Column("gid", Integer, nullable=False),
    Column("anonymous_ftp", Boolean, nullable=False, default=False),
    Column("disabled", Boolean, nullable=False, default=False),
    UniqueConstraint("host", "name"),
)

TABLE_NAMES: tuple[str, ...] = tuple(metadata.tables)


def create_all_tables(engine: Engine) -> None:
    """Create the mirrored tables on ``engine`` if they are missing."""

    metadata.create_all(engine, checkfirst=True)
    log.debug("Ensured tables: %s", ", ".join(TABLE_NAMES))
