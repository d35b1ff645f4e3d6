"""Host tooling behind the service, package, relabel and time zone ports."""

from __future__ import annotations

import shlex
import subprocess
import threading
from collections.abc import Callable, Sequence
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Collection

log = getLogger(__name__)

type CommandRunner = Callable[[Sequence[str]], subprocess.CompletedProcess[str]]


class CommandError(RuntimeError):
    """Raised when an external command exits with an unexpected status."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str) -> None:
        super().__init__(
            f"{shlex.join(argv)} exited with status {returncode}: {stderr.strip()}"
        )
        self.argv = tuple(argv)
        self.returncode = returncode
        self.stderr = stderr


def run_command(argv: Sequence[str]) -> subprocess.CompletedProcess[str]:
    log.debug("exec %s", shlex.join(argv))
    return subprocess.run(list(argv), capture_output=True, text=True, check=False)


class _CommandAdapter:
    def __init__(self, runner: CommandRunner = run_command) -> None:
        self.runner = runner

    def _run(
        self,
        argv: Sequence[str],
        *,
        allowed: Collection[int] = (0,),
    ) -> subprocess.CompletedProcess[str]:
        result = self.runner(argv)
        if result.returncode not in allowed:
            raise CommandError(argv, result.returncode, result.stderr or "")
        return result


class SystemctlServiceManager(_CommandAdapter):
    def __init__(
        self,
        runner: CommandRunner = run_command,
        *,
        systemctl: str = "/usr/bin/systemctl",
    ) -> None:
        super().__init__(runner)
        self.systemctl = systemctl

    def _systemctl(self, action: str, service: str) -> None:
        self._run([self.systemctl, action, service])

    def enable(self, service: str) -> None:
        self._systemctl("enable", service)

    def disable(self, service: str) -> None:
        self._systemctl("disable", service)

    def start(self, service: str) -> None:
        self._systemctl("start", service)

    def stop(self, service: str) -> None:
        self._systemctl("stop", service)

    def restart(self, service: str) -> None:
        log.info("Restarting %s", service)
        self._systemctl("restart", service)

    def reload_or_restart(self, service: str) -> None:
        log.info("Reloading %s", service)
        self._systemctl("reload-or-restart", service)


class YumPackageManager(_CommandAdapter):
    """Installs and removes RPMs; one transaction at a time across reconcilers."""

    _lock = threading.Lock()

    def __init__(
        self,
        runner: CommandRunner = run_command,
        *,
        rpm: str = "/bin/rpm",
        yum: str = "/usr/bin/yum",
    ) -> None:
        super().__init__(runner)
        self.rpm = rpm
        self.yum = yum

    def is_installed(self, package: str) -> bool:
        result = self._run([self.rpm, "-q", package], allowed=(0, 1))
        return result.returncode == 0

    def install(self, package: str) -> bool:
        with self._lock:
            if self.is_installed(package):
                return False
            log.info("Installing package %s", package)
            self._run([self.yum, "-q", "-y", "install", package])
            return True

    def remove(self, package: str) -> bool:
        with self._lock:
            if not self.is_installed(package):
                return False
            log.info("Removing package %s", package)
            self._run([self.yum, "-q", "-y", "remove", package])
            return True


class RestoreconRelabeler(_CommandAdapter):
    """Restores SELinux contexts with a single ``restorecon -R`` per pass."""

    def __init__(
        self,
        runner: CommandRunner = run_command,
        *,
        restorecon: str = "/sbin/restorecon",
    ) -> None:
        super().__init__(runner)
        self.restorecon = restorecon

    def relabel(self, paths: Collection[Path]) -> None:
        if not paths:
            return
        if not Path(self.restorecon).exists():
            log.debug("%s not installed, skipping relabel of %d path(s)", self.restorecon, len(paths))
            return
        self._run([self.restorecon, "-R", *(str(path) for path in sorted(paths))])


class TimedatectlTimeZoneControl(_CommandAdapter):
    def __init__(
        self,
        runner: CommandRunner = run_command,
        *,
        timedatectl: str = "/usr/bin/timedatectl",
    ) -> None:
        super().__init__(runner)
        self.timedatectl = timedatectl

    def set_time_zone(self, zone: str) -> None:
        self._run([self.timedatectl, "set-timezone", zone])
