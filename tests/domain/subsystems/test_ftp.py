from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from hostconf.domain.errors import SnapshotError, UnsupportedEnvironmentError
from hostconf.domain.model import (
    AppProtocol,
    FtpPrivateServer,
    HttpdSite,
    NetBind,
    NetProtocol,
    OperatingSystem,
)
from hostconf.domain.subsystems import FtpReconciler, SharedFtpReconciler
from hostconf.domain.subsystems.ftp import render_vsftpd_conf
from tests.helpers.fakes import make_host

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from hostconf.domain.reconciliation import RebuildPass
    from hostconf.domain.subsystems import HostLayout, SubsystemContext
    from tests.helpers.fakes import FakeHostData


def _ftp_bind(bind_id: int, ip_address: str, **overrides: object) -> NetBind:
    return NetBind(
        id=bind_id,
        ip_address=ip_address,
        port=21,
        app_protocol=AppProtocol.FTP,
        **overrides,  # pyright: ignore[reportArgumentType]
    )


@pytest.fixture
def ftp_host(host_data: FakeHostData, layout: HostLayout) -> FakeHostData:
    (layout.root / "etc" / "vsftpd").mkdir(parents=True)
    host_data.host = make_host(OperatingSystem.CENTOS_5)
    host_data.guest_users = ["alice", "bob"]
    host_data.binds = [
        _ftp_bind(1, "0.0.0.0"),
        _ftp_bind(
            2,
            "192.0.2.20",
            private_ftp=FtpPrivateServer(
                hostname="ftp.example.com",
                ftp_username="example",
                logfile="/var/log/vsftpd/example.log",
            ),
        ),
        _ftp_bind(3, "192.0.2.30", tcp_redirect=True),
    ]
    return host_data


def _vhosts(layout: HostLayout) -> Path:
    return layout.root / "etc" / "vsftpd" / "vhosts"


def test_render_private_server_config() -> None:
    private = FtpPrivateServer(
        hostname="ftp.example.com",
        ftp_username="example",
        logfile="/var/log/vsftpd/example.log",
    )

    text = render_vsftpd_conf(
        banner_host="ftp.example.com", anonymous=False, private=private
    ).decode()

    assert "anonymous_enable=NO" in text
    assert "text_userdb_names=YES" in text
    assert "ftp_username=example" in text
    assert "ftpd_banner=FTP Host [ftp.example.com]" in text
    assert text.endswith("xferlog_file=/var/log/vsftpd/example.log\n")


def test_rebuild_writes_main_config_and_one_vhost_per_bind(
    ftp_host: FakeHostData,
    context: SubsystemContext,
    layout: HostLayout,
    new_pass: Callable[[str], RebuildPass],
) -> None:
    rebuild_pass = new_pass("ftp")

    FtpReconciler(context).rebuild(rebuild_pass)

    assert rebuild_pass.changed
    assert (layout.root / "etc" / "vsftpd" / "chroot_list").read_text() == "alice\nbob\n"
    main_conf = (layout.root / "etc" / "vsftpd" / "vsftpd.conf").read_text()
    assert "ftpd_banner=FTP Host [www1.example.com]" in main_conf
    assert sorted(os.listdir(_vhosts(layout))) == [
        "vsftpd_0.0.0.0_21.conf",
        "vsftpd_192.0.2.20_21.conf",
    ]
    private_conf = (_vhosts(layout) / "vsftpd_192.0.2.20_21.conf").read_text()
    assert "ftpd_banner=FTP Host [ftp.example.com]" in private_conf
    assert "anonymous_enable=NO" in private_conf


def test_second_pass_is_unchanged_and_stale_vhosts_are_trimmed(
    ftp_host: FakeHostData,
    context: SubsystemContext,
    layout: HostLayout,
    new_pass: Callable[[str], RebuildPass],
) -> None:
    reconciler = FtpReconciler(context)
    reconciler.rebuild(new_pass("ftp"))

    unchanged = new_pass("ftp")
    reconciler.rebuild(unchanged)
    assert not unchanged.changed

    ftp_host.binds = ftp_host.binds[:1]
    trimmed = new_pass("ftp")
    reconciler.rebuild(trimmed)
    assert trimmed.changed
    assert os.listdir(_vhosts(layout)) == ["vsftpd_0.0.0.0_21.conf"]


def test_redirect_bind_with_private_server_is_rejected(
    ftp_host: FakeHostData,
    context: SubsystemContext,
    new_pass: Callable[[str], RebuildPass],
) -> None:
    ftp_host.binds = [
        _ftp_bind(
            9,
            "192.0.2.40",
            tcp_redirect=True,
            private_ftp=FtpPrivateServer(hostname="x", ftp_username="x", logfile="x"),
        )
    ]

    with pytest.raises(SnapshotError):
        FtpReconciler(context).rebuild(new_pass("ftp"))


def test_udp_bind_is_rejected(
    ftp_host: FakeHostData,
    context: SubsystemContext,
    new_pass: Callable[[str], RebuildPass],
) -> None:
    ftp_host.binds = [_ftp_bind(9, "192.0.2.40", net_protocol=NetProtocol.UDP)]

    with pytest.raises(SnapshotError, match="TCP"):
        FtpReconciler(context).rebuild(new_pass("ftp"))


def test_ftp_is_not_managed_on_centos7(
    ftp_host: FakeHostData,
    context: SubsystemContext,
    new_pass: Callable[[str], RebuildPass],
) -> None:
    ftp_host.host = make_host(OperatingSystem.CENTOS_7)

    assert not FtpReconciler.applies_to(OperatingSystem.CENTOS_7)
    with pytest.raises(UnsupportedEnvironmentError):
        FtpReconciler(context).rebuild(new_pass("ftp"))


def test_shared_ftp_creates_site_directories(
    host_data: FakeHostData,
    context: SubsystemContext,
    layout: HostLayout,
    new_pass: Callable[[str], RebuildPass],
) -> None:
    (layout.root / "var" / "ftp").mkdir(parents=True)
    uid, gid = os.getuid(), os.getgid()
    host_data.sites = [
        HttpdSite(name="active", uid=uid, gid=gid, anonymous_ftp=True),
        HttpdSite(name="parked", uid=uid, gid=gid, anonymous_ftp=True, disabled=True),
        HttpdSite(name="no-ftp", uid=uid, gid=gid),
    ]
    shared = layout.root / "var" / "ftp" / "pub"
    shared.mkdir()
    (shared / "retired").mkdir()

    rebuild_pass = new_pass("shared-ftp")
    SharedFtpReconciler(context).rebuild(rebuild_pass)

    assert sorted(os.listdir(shared)) == ["active", "parked"]
    assert (shared / "active").stat().st_mode & 0o777 == 0o775
    assert (shared / "parked").stat().st_mode & 0o777 == 0o700
    assert shared / "active" in rebuild_pass.relabel
    assert rebuild_pass.changed

    again = new_pass("shared-ftp")
    SharedFtpReconciler(context).rebuild(again)
    assert not again.changed
