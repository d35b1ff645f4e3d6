from __future__ import annotations

import threading

import httpx
import pytest

from hostconf.adapters.notifier import HttpChangeNotifier, LocalChangeNotifier, NotifierError
from hostconf.config import NotifierConfig, RetryPolicy


class CountingHandle:
    def __init__(self) -> None:
        self.count = 0
        self.notified = threading.Event()

    def on_notification(self) -> None:
        self.count += 1
        self.notified.set()


def _config() -> NotifierConfig:
    return NotifierConfig(
        base_url="https://master.example.com/api",
        poll_interval_seconds=0.01,
        retry=RetryPolicy(total=0),
    )


def test_local_notifier_fans_out_per_source() -> None:
    notifier = LocalChangeNotifier()
    dns = CountingHandle()
    ftp = CountingHandle()
    notifier.subscribe("net_bind", dns)
    notifier.subscribe("net_bind", dns)
    notifier.subscribe("net_bind", ftp)
    notifier.subscribe("dns_zone", dns)

    assert notifier.publish("net_bind") == 2
    assert notifier.publish("dns_zone") == 1
    assert notifier.publish("httpd_site") == 0
    assert (dns.count, ftp.count) == (2, 1)

    notifier.unsubscribe("net_bind", dns)
    assert notifier.subscribers("net_bind") == 1


def test_poll_once_publishes_tables_and_advances_cursor() -> None:
    seen_params: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_params.append(dict(request.url.params))
        return httpx.Response(
            200, json={"cursor": 42, "tables": ["dns_zone", "net_bind", "dns_zone"]}
        )

    local = LocalChangeNotifier()
    handle = CountingHandle()
    local.subscribe("dns_zone", handle)

    with HttpChangeNotifier(_config(), local=local, transport=httpx.MockTransport(handler)) as feed:
        assert feed.poll_once() == ["dns_zone", "net_bind"]
        assert feed.cursor == 42
        feed.poll_once()

    assert handle.count == 2
    assert seen_params == [{}, {"since": "42"}]


def test_poll_once_rejects_malformed_payload() -> None:
    transport = httpx.MockTransport(lambda _: httpx.Response(200, json={"cursor": "soon"}))

    with HttpChangeNotifier(_config(), transport=transport) as feed, pytest.raises(NotifierError):
        feed.poll_once()


def test_poll_once_raises_on_http_error() -> None:
    transport = httpx.MockTransport(lambda _: httpx.Response(404))

    with HttpChangeNotifier(_config(), transport=transport) as feed, pytest.raises(
        httpx.HTTPStatusError
    ):
        feed.poll_once()


def test_background_loop_survives_failures() -> None:
    responses = iter(
        [
            httpx.Response(404),
            httpx.Response(200, json={"cursor": 1, "tables": ["host"]}),
        ]
    )

    def handler(_: httpx.Request) -> httpx.Response:
        return next(responses, httpx.Response(200, json={"cursor": 1, "tables": []}))

    local = LocalChangeNotifier()
    handle = CountingHandle()
    local.subscribe("host", handle)
    feed = HttpChangeNotifier(_config(), local=local, transport=httpx.MockTransport(handler))

    feed.start()
    try:
        assert handle.notified.wait(5.0)
    finally:
        feed.stop(timeout=5.0)

    assert handle.count == 1
