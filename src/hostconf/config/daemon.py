"""Daemon-wide settings: which host we are, which reconcilers run, and how."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .env import env_bool, env_float, optional_env_var, require_env_vars
from .errors import ConfigurationError

ALL_RECONCILERS: tuple[str, ...] = (
    "dns",
    "ftp",
    "shared-ftp",
    "mail-filter",
    "fail2ban",
    "timezone",
    "groups",
)
DEFAULT_SLOW_REBUILD_SECONDS = 5 * 60.0


@dataclass(frozen=True, slots=True)
class DaemonConfig:
    hostname: str
    root: Path = Path("/")
    enabled: frozenset[str] = field(default_factory=lambda: frozenset(ALL_RECONCILERS))
    uninstall_enabled: bool = False
    debounce_seconds: float = 0.0
    slow_rebuild_seconds: float = DEFAULT_SLOW_REBUILD_SECONDS

    def is_enabled(self, name: str) -> bool:
        return name in self.enabled


def parse_enabled(raw: str | None) -> frozenset[str]:
    if raw is None:
        return frozenset(ALL_RECONCILERS)
    names = {part.strip() for part in raw.split(",") if part.strip()}
    unknown = names.difference(ALL_RECONCILERS)
    if unknown:
        unknown_list = ", ".join(sorted(unknown))
        raise ConfigurationError(f"Unknown reconcilers in HOSTCONF_RECONCILERS: {unknown_list}")
    return frozenset(names)


def get_daemon_config() -> DaemonConfig:
    values = require_env_vars(("HOSTCONF_HOSTNAME",))
    root = optional_env_var("HOSTCONF_ROOT")
    return DaemonConfig(
        hostname=values["HOSTCONF_HOSTNAME"].strip(),
        root=Path(root) if root else Path("/"),
        enabled=parse_enabled(optional_env_var("HOSTCONF_RECONCILERS")),
        uninstall_enabled=env_bool("HOSTCONF_UNINSTALL_ENABLED", default=False),
        debounce_seconds=env_float("HOSTCONF_DEBOUNCE_SECONDS", 0.0),
        slow_rebuild_seconds=env_float(
            "HOSTCONF_SLOW_REBUILD_SECONDS", DEFAULT_SLOW_REBUILD_SECONDS
        ),
    )
