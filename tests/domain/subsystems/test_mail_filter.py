from __future__ import annotations

import os
from dataclasses import replace
from typing import TYPE_CHECKING

import pytest

from hostconf.domain.errors import SnapshotError
from hostconf.domain.model import (
    AppProtocol,
    BillingPackage,
    EmailDomain,
    EmailLimit,
    LinuxGroup,
    NetBind,
    SmtpRelay,
    SmtpRelayType,
)
from hostconf.domain.subsystems import MailFilterReconciler

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from hostconf.domain.reconciliation import RebuildPass
    from hostconf.domain.subsystems import HostLayout, SubsystemContext
    from tests.helpers.fakes import FakeHostData, FakePackageManager


@pytest.fixture
def properties(layout: HostLayout) -> Path:
    directory = layout.root / "etc" / "aoserv" / "jilter"
    directory.mkdir(parents=True)
    return directory / "jilter.properties"


@pytest.fixture
def milter_host(host_data: FakeHostData) -> FakeHostData:
    host_data.with_host(restrict_outbound_email=True)
    host_data.groups = [LinuxGroup(name="aoserv-jilter", gid=os.getgid())]
    host_data.binds = [
        NetBind(id=1, ip_address="127.0.0.1", port=12345, app_protocol=AppProtocol.MILTER),
        NetBind(id=2, ip_address="192.0.2.10", port=25, app_protocol=AppProtocol.SMTP),
        NetBind(id=3, ip_address="0.0.0.0", port=22, app_protocol=AppProtocol.SSH),
    ]
    host_data.email_domains = [
        EmailDomain(domain="example.org", package="pkg-b", addresses=("info",)),
        EmailDomain(domain="example.com", package="pkg-a", addresses=("sales", "info", "info")),
    ]
    host_data.packages = {
        "pkg-a": BillingPackage(
            name="pkg-a",
            email_in=EmailLimit(burst=100, rate=0.5),
            email_out=EmailLimit(burst=20, rate=2.0),
        ),
        "pkg-b": BillingPackage(name="pkg-b"),
    }
    host_data.relays = [
        SmtpRelay(host="198.51.100.1", relay_type=SmtpRelayType.ALLOW_RELAY),
        SmtpRelay(host="203.0.113.9", relay_type=SmtpRelayType.DENY_SPAM),
    ]
    return host_data


def test_rebuild_writes_sorted_properties(
    milter_host: FakeHostData,
    context: SubsystemContext,
    properties: Path,
    packages: FakePackageManager,
    new_pass: Callable[[str], RebuildPass],
) -> None:
    rebuild_pass = new_pass("mail-filter")

    MailFilterReconciler(context).rebuild(rebuild_pass)

    assert packages.installs == ["aoserv-jilter"]
    lines = properties.read_text().splitlines()
    assert lines[1:] == [
        "listen.ip=127.0.0.1",
        "listen.port=12345",
        "restrict_outbound_email=true",
        "domainPackages.example.com=pkg-a",
        "domainAddresses.example.com=info,sales",
        "domainPackages.example.org=pkg-b",
        "domainAddresses.example.org=info",
        "ips=127.0.0.1,192.0.2.10",
        "denies=",
        "denySpams=203.0.113.9",
        "allowRelays=198.51.100.1",
        "emailInLimit.pkg-a.burst=100",
        "emailInLimit.pkg-a.rate=0.5",
        "emailOutLimit.pkg-a.burst=20",
        "emailOutLimit.pkg-a.rate=2",
    ]
    assert properties.stat().st_mode & 0o777 == 0o640


def test_second_pass_is_unchanged(
    milter_host: FakeHostData,
    context: SubsystemContext,
    properties: Path,
    new_pass: Callable[[str], RebuildPass],
) -> None:
    reconciler = MailFilterReconciler(context)
    reconciler.rebuild(new_pass("mail-filter"))

    again = new_pass("mail-filter")
    reconciler.rebuild(again)

    assert not again.changed


def test_more_than_one_milter_is_rejected(
    milter_host: FakeHostData,
    context: SubsystemContext,
    properties: Path,
    new_pass: Callable[[str], RebuildPass],
) -> None:
    milter_host.binds.append(
        NetBind(id=4, ip_address="127.0.0.1", port=12346, app_protocol=AppProtocol.MILTER)
    )

    with pytest.raises(SnapshotError, match="More than one milter"):
        MailFilterReconciler(context).rebuild(new_pass("mail-filter"))
    assert not properties.exists()


def test_missing_billing_package_is_rejected(
    milter_host: FakeHostData,
    context: SubsystemContext,
    properties: Path,
    new_pass: Callable[[str], RebuildPass],
) -> None:
    del milter_host.packages["pkg-b"]

    with pytest.raises(SnapshotError, match="pkg-b"):
        MailFilterReconciler(context).rebuild(new_pass("mail-filter"))


def test_no_milter_uninstalls_only_when_enabled(
    milter_host: FakeHostData,
    context: SubsystemContext,
    properties: Path,
    packages: FakePackageManager,
    new_pass: Callable[[str], RebuildPass],
) -> None:
    MailFilterReconciler(context).rebuild(new_pass("mail-filter"))
    properties.with_name("jilter.properties.rpmsave").write_text("old\n")
    milter_host.binds = milter_host.binds[1:]

    kept = new_pass("mail-filter")
    MailFilterReconciler(context).rebuild(kept)
    assert properties.exists()
    assert not kept.changed

    removed = new_pass("mail-filter")
    MailFilterReconciler(replace(context, uninstall_enabled=True)).rebuild(removed)
    assert removed.changed
    assert packages.removals == ["aoserv-jilter"]
    assert not properties.parent.exists()
