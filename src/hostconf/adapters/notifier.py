"""Change notification delivery.

``LocalChangeNotifier`` fans "source changed" events out to subscribed handles
inside the process. ``HttpChangeNotifier`` polls the master's change feed and
republishes every reported table through a local notifier.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from httpx_retries import Retry, RetryTransport
from pydantic import BaseModel, ConfigDict, ValidationError

if TYPE_CHECKING:
    from types import TracebackType

    from hostconf.config.notifier import NotifierConfig, RetryPolicy
    from hostconf.domain.ports import NotificationHandle

log = getLogger(__name__)

CHANGES_PATH = "/changes"


class NotifierError(RuntimeError):
    """Raised when the change feed answers with something we cannot use."""


class ChangeFeedPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cursor: int
    tables: list[str]


class LocalChangeNotifier:
    """Thread-safe in-process fan-out keyed by source name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: dict[str, list[NotificationHandle]] = defaultdict(list)

    def subscribe(self, source: str, handle: NotificationHandle) -> None:
        with self._lock:
            handles = self._handles[source]
            if not any(existing is handle for existing in handles):
                handles.append(handle)

    def unsubscribe(self, source: str, handle: NotificationHandle) -> None:
        with self._lock:
            handles = self._handles.get(source)
            if handles is None:
                return
            handles[:] = [existing for existing in handles if existing is not handle]
            if not handles:
                del self._handles[source]

    def subscribers(self, source: str) -> int:
        with self._lock:
            return len(self._handles.get(source, ()))

    def publish(self, source: str) -> int:
        """Notify every handle subscribed to ``source``; return how many were notified."""

        with self._lock:
            handles = list(self._handles.get(source, ()))
        for handle in handles:
            handle.on_notification()
        log.debug("Published change of %s to %d handle(s)", source, len(handles))
        return len(handles)


def _build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_backoff_wait,
        respect_retry_after_header=policy.respect_retry_after_header,
        allowed_methods=("GET",),
        status_forcelist=tuple(policy.status_forcelist),
        retry_on_exceptions=policy.retry_on_exceptions,
        backoff_jitter=policy.backoff_jitter,
    )


class HttpChangeNotifier:
    """Polls ``GET {base_url}/changes?since=<cursor>`` on a daemon thread."""

    def __init__(
        self,
        config: NotifierConfig,
        *,
        local: LocalChangeNotifier | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self.local = local or LocalChangeNotifier()
        self.cursor: int | None = None
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            transport=RetryTransport(transport=transport, retry=_build_retry(config.retry)),
        )
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def subscribe(self, source: str, handle: NotificationHandle) -> None:
        self.local.subscribe(source, handle)

    def unsubscribe(self, source: str, handle: NotificationHandle) -> None:
        self.local.unsubscribe(source, handle)

    def poll_once(self) -> list[str]:
        """Fetch one batch of changes, publish it and return the changed tables."""

        params = {} if self.cursor is None else {"since": self.cursor}
        response = self._client.get(CHANGES_PATH, params=params)
        response.raise_for_status()
        try:
            payload = ChangeFeedPayload.model_validate_json(response.content)
        except ValidationError as exc:
            raise NotifierError(f"Malformed change feed payload: {exc}") from exc

        self.cursor = payload.cursor
        tables = sorted(set(payload.tables))
        for table in tables:
            self.local.publish(table)
        if tables:
            log.info("Change feed at cursor %d: %s", payload.cursor, ", ".join(tables))
        return tables

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except (httpx.HTTPError, NotifierError) as exc:
                log.warning(
                    "Change feed poll failed, retrying in %.1fs: %s",
                    self.config.poll_interval_seconds,
                    exc,
                )
            self._stop.wait(self.config.poll_interval_seconds)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="change-feed", daemon=True)
        self._thread.start()
        log.info("Polling change feed at %s", self.config.base_url)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._client.close()

    def __enter__(self) -> HttpChangeNotifier:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.stop()
