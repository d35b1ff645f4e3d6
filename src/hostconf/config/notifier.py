"""Configuration types for the remote change feed."""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx

from .env import env_float, optional_env_var

DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    total: int = 4
    backoff_factor: float = 0.5
    max_backoff_wait: float = 60.0
    respect_retry_after_header: bool = True
    status_forcelist: frozenset[int] = field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504})
    )
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
    )
    backoff_jitter: float = 1.0


@dataclass(slots=True, frozen=True)
class NotifierConfig:
    base_url: str
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    retry: RetryPolicy = field(default_factory=RetryPolicy)


def get_notifier_config() -> NotifierConfig | None:
    """Return the change feed configuration, or ``None`` when no feed is configured."""

    base_url = optional_env_var("HOSTCONF_NOTIFY_URL")
    if base_url is None:
        return None
    return NotifierConfig(
        base_url=base_url,
        poll_interval_seconds=env_float(
            "HOSTCONF_NOTIFY_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS
        ),
    )
