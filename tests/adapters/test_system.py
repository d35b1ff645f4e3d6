from __future__ import annotations

import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from hostconf.adapters.system import (
    CommandError,
    RestoreconRelabeler,
    SystemctlServiceManager,
    TimedatectlTimeZoneControl,
    YumPackageManager,
)

if TYPE_CHECKING:
    from collections.abc import Sequence


class FakeRunner:
    def __init__(self, returncodes: dict[tuple[str, ...], int] | None = None) -> None:
        self.returncodes = returncodes or {}
        self.calls: list[tuple[str, ...]] = []

    def __call__(self, argv: Sequence[str]) -> subprocess.CompletedProcess[str]:
        key = tuple(argv)
        self.calls.append(key)
        return subprocess.CompletedProcess(
            list(argv), self.returncodes.get(key, 0), stdout="", stderr="boom"
        )


def test_systemctl_actions() -> None:
    runner = FakeRunner()
    services = SystemctlServiceManager(runner, systemctl="systemctl")

    services.enable("named")
    services.reload_or_restart("named")

    assert runner.calls == [
        ("systemctl", "enable", "named"),
        ("systemctl", "reload-or-restart", "named"),
    ]


def test_systemctl_failure_raises_command_error() -> None:
    runner = FakeRunner({("systemctl", "restart", "named"): 1})
    services = SystemctlServiceManager(runner, systemctl="systemctl")

    with pytest.raises(CommandError) as excinfo:
        services.restart("named")

    assert excinfo.value.returncode == 1
    assert "boom" in str(excinfo.value)


def test_yum_installs_only_missing_packages() -> None:
    runner = FakeRunner({("rpm", "-q", "bind"): 1})
    packages = YumPackageManager(runner, rpm="rpm", yum="yum")

    assert packages.install("bind") is True
    assert packages.install("fail2ban-server") is False

    assert ("yum", "-q", "-y", "install", "bind") in runner.calls
    assert ("yum", "-q", "-y", "install", "fail2ban-server") not in runner.calls


def test_yum_remove_skips_absent_package() -> None:
    runner = FakeRunner({("rpm", "-q", "aoserv-jilter"): 1})
    packages = YumPackageManager(runner, rpm="rpm", yum="yum")

    assert packages.remove("aoserv-jilter") is False
    assert runner.calls == [("rpm", "-q", "aoserv-jilter")]


def test_rpm_query_error_is_raised() -> None:
    runner = FakeRunner({("rpm", "-q", "bind"): 4})

    with pytest.raises(CommandError):
        YumPackageManager(runner, rpm="rpm", yum="yum").is_installed("bind")


def test_restorecon_runs_once_for_all_paths(tmp_path: Path) -> None:
    restorecon = tmp_path / "restorecon"
    restorecon.write_text("")
    runner = FakeRunner()
    relabeler = RestoreconRelabeler(runner, restorecon=str(restorecon))

    relabeler.relabel({Path("/etc/named.conf"), Path("/var/named/a.zone")})
    relabeler.relabel(set())

    assert runner.calls == [(str(restorecon), "-R", "/etc/named.conf", "/var/named/a.zone")]


def test_restorecon_missing_is_skipped(tmp_path: Path) -> None:
    runner = FakeRunner()
    relabeler = RestoreconRelabeler(runner, restorecon=str(tmp_path / "absent"))

    relabeler.relabel({Path("/etc/group")})

    assert runner.calls == []


def test_timedatectl_sets_zone() -> None:
    runner = FakeRunner()

    TimedatectlTimeZoneControl(runner, timedatectl="timedatectl").set_time_zone("UTC")

    assert runner.calls == [("timedatectl", "set-timezone", "UTC")]
