from __future__ import annotations

import os
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

import pytest

from hostconf.adapters.notifier import LocalChangeNotifier
from hostconf.domain.reconciliation import (
    ManagedArtifact,
    PassStatus,
    Reconciler,
    ReconcilerRegistry,
    ReconcilerState,
)
from tests.helpers.fakes import FakeRelabeler

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    from hostconf.domain.reconciliation import RebuildPass

TIMEOUT = 5.0


@pytest.fixture
def executor() -> Iterator[ThreadPoolExecutor]:
    pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="test-reconciler")
    try:
        yield pool
    finally:
        pool.shutdown(wait=True)


class BlockingRebuild:
    """Rebuild whose first pass blocks until released."""

    def __init__(self) -> None:
        self.passes: list[RebuildPass] = []
        self.first_started = threading.Event()
        self.release = threading.Event()

    def __call__(self, rebuild_pass: RebuildPass) -> None:
        self.passes.append(rebuild_pass)
        if len(self.passes) == 1:
            self.first_started.set()
            assert self.release.wait(TIMEOUT)


@pytest.mark.parametrize("notifications", [0, 1, 2, 100])
def test_notifications_during_pass_collapse_into_one_rerun(
    executor: ThreadPoolExecutor, notifications: int
) -> None:
    rebuild = BlockingRebuild()
    reconciler = Reconciler("dns", rebuild, executor=executor)

    reconciler.on_notification()
    assert rebuild.first_started.wait(TIMEOUT)
    for _ in range(notifications):
        reconciler.on_notification()

    expected_state = ReconcilerState.RUNNING_PENDING if notifications else ReconcilerState.RUNNING
    assert reconciler.status is expected_state

    rebuild.release.set()
    assert reconciler.wait_idle(TIMEOUT)
    assert len(rebuild.passes) == (2 if notifications else 1)
    assert reconciler.status is ReconcilerState.IDLE


def test_passes_never_overlap(executor: ThreadPoolExecutor) -> None:
    active = 0
    peak = 0
    guard = threading.Lock()
    rng = random.Random(1234)

    def rebuild(_: RebuildPass) -> None:
        nonlocal active, peak
        with guard:
            active += 1
            peak = max(peak, active)
        time.sleep(rng.random() / 500)
        with guard:
            active -= 1

    reconciler = Reconciler("ftp", rebuild, executor=executor)

    def hammer() -> None:
        for _ in range(50):
            if rng.random() < 0.1:
                reconciler.rebuild_now()
            else:
                reconciler.on_notification()
            time.sleep(rng.random() / 1000)

    threads = [threading.Thread(target=hammer) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(TIMEOUT)

    assert reconciler.wait_idle(TIMEOUT)
    assert peak == 1


def test_failed_pass_keeps_reconciler_usable(executor: ThreadPoolExecutor) -> None:
    calls = 0

    def rebuild(_: RebuildPass) -> None:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise OSError("disk full")

    reconciler = Reconciler("groups", rebuild, executor=executor)

    assert reconciler.wait_for_build(TIMEOUT)
    failed = reconciler.last_pass
    assert failed is not None
    assert failed.status is PassStatus.FAILED
    assert isinstance(failed.error, OSError)

    assert reconciler.wait_for_build(TIMEOUT)
    recovered = reconciler.last_pass
    assert recovered is not None
    assert recovered.succeeded


def test_reload_runs_once_per_changed_pass(executor: ThreadPoolExecutor) -> None:
    reloads: list[int] = []
    change = True

    def rebuild(rebuild_pass: RebuildPass) -> None:
        if change:
            rebuild_pass.mark_changed()

    reconciler = Reconciler(
        "dns", rebuild, executor=executor, reload=lambda: reloads.append(1)
    )

    reconciler.rebuild_now()
    assert reloads == [1]

    change = False
    reconciler.rebuild_now()
    assert reloads == [1]


def test_reload_failure_fails_the_pass(executor: ThreadPoolExecutor) -> None:
    def reload() -> None:
        raise RuntimeError("named refused to reload")

    reconciler = Reconciler(
        "dns", lambda rebuild_pass: rebuild_pass.mark_changed(), executor=executor, reload=reload
    )

    rebuild_pass = reconciler.rebuild_now()

    assert rebuild_pass.status is PassStatus.FAILED


def test_memo_is_shared_across_passes(executor: ThreadPoolExecutor) -> None:
    seen: list[bool] = []

    def rebuild(rebuild_pass: RebuildPass) -> None:
        seen.append(rebuild_pass.memo.is_current("example.com", 5))
        rebuild_pass.memo.remember("example.com", 5)

    reconciler = Reconciler("dns", rebuild, executor=executor)
    reconciler.rebuild_now()
    reconciler.rebuild_now()

    assert seen == [False, True]


def test_wait_for_build_observes_state_set_before_call(executor: ThreadPoolExecutor) -> None:
    store = {"serial": 1}
    observed: list[int] = []

    def rebuild(_: RebuildPass) -> None:
        observed.append(store["serial"])

    reconciler = Reconciler("dns", rebuild, executor=executor, debounce_seconds=0.5)
    store["serial"] = 2

    started = time.monotonic()
    assert reconciler.wait_for_build(TIMEOUT)

    assert observed[-1] == 2
    # waiting wakes the debounce early
    assert time.monotonic() - started < 0.5


def test_relabel_runs_after_pass(executor: ThreadPoolExecutor, tmp_path: Path) -> None:
    relabeler = FakeRelabeler()
    target = tmp_path / "named.conf"

    def rebuild(rebuild_pass: RebuildPass) -> None:
        rebuild_pass.commit(
            ManagedArtifact(
                path=target, content=b"x\n", uid=os.getuid(), gid=os.getgid(), mode=0o640
            )
        )

    reconciler = Reconciler("dns", rebuild, executor=executor, relabeler=relabeler)
    reconciler.rebuild_now()
    reconciler.rebuild_now()

    assert relabeler.batches == [[target]]


def test_closed_reconciler_ignores_notifications(executor: ThreadPoolExecutor) -> None:
    rebuild = BlockingRebuild()
    rebuild.release.set()
    reconciler = Reconciler("dns", rebuild, executor=executor)

    reconciler.close()
    reconciler.on_notification()

    assert reconciler.wait_idle(TIMEOUT)
    assert rebuild.passes == []


def test_wait_for_build_on_closed_reconciler_returns_false(executor: ThreadPoolExecutor) -> None:
    reconciler = Reconciler("dns", lambda _: None, executor=executor)
    reconciler.close()
    results: list[bool] = []

    waiter = threading.Thread(target=lambda: results.append(reconciler.wait_for_build()))
    waiter.start()
    waiter.join(TIMEOUT)

    assert not waiter.is_alive()
    assert results == [False]


def test_close_releases_waiter_whose_pass_never_starts(executor: ThreadPoolExecutor) -> None:
    rebuild = BlockingRebuild()
    reconciler = Reconciler("dns", rebuild, executor=executor)
    reconciler.on_notification()
    assert rebuild.first_started.wait(TIMEOUT)
    results: list[bool] = []

    waiter = threading.Thread(target=lambda: results.append(reconciler.wait_for_build()))
    waiter.start()
    deadline = time.monotonic() + TIMEOUT
    while reconciler.status is not ReconcilerState.RUNNING_PENDING:
        assert time.monotonic() < deadline
        time.sleep(0.01)
    reconciler.close()
    rebuild.release.set()
    waiter.join(TIMEOUT)

    assert not waiter.is_alive()
    assert results == [False]
    assert len(rebuild.passes) == 1


def test_register_is_idempotent(executor: ThreadPoolExecutor) -> None:
    notifier = LocalChangeNotifier()
    reconciler = Reconciler("dns", lambda _: None, executor=executor)

    reconciler.register(notifier, ["dns_zone", "net_bind"])
    reconciler.register(notifier, ["dns_zone"])

    assert notifier.subscribers("dns_zone") == 1
    assert reconciler.sources == ["dns_zone", "net_bind"]

    reconciler.unregister()
    assert notifier.subscribers("dns_zone") == 0


def test_registry_starts_with_one_pass_per_reconciler() -> None:
    notifier = LocalChangeNotifier()
    counts = {"dns": 0, "ftp": 0}

    def counter(name: str) -> Callable[[RebuildPass], None]:
        def rebuild(_: RebuildPass) -> None:
            counts[name] += 1

        return rebuild

    with ReconcilerRegistry(notifier=notifier) as registry:
        registry.add("dns", counter("dns"), sources=("dns_zone",))
        registry.add("ftp", counter("ftp"), sources=("net_bind",))
        registry.start()
        assert registry.wait_idle(TIMEOUT)
        assert counts == {"dns": 1, "ftp": 1}

        notifier.publish("dns_zone")
        assert registry.wait_idle(TIMEOUT)
        assert registry.get("dns").wait_idle(TIMEOUT)

    assert counts["dns"] == 2
    assert counts["ftp"] == 1
    assert notifier.subscribers("dns_zone") == 0


def test_registry_rejects_duplicate_names() -> None:
    with ReconcilerRegistry(notifier=LocalChangeNotifier()) as registry:
        registry.add("dns", lambda _: None, sources=())
        with pytest.raises(ValueError, match="already registered"):
            registry.add("dns", lambda _: None, sources=())
        assert "dns" in registry
        assert len(registry) == 1
