"""Per-subsystem reconciler: coalesced triggering and serialized rebuilds.

A notification never runs the rebuild inline. When the reconciler is idle it
hands one worker to the executor; while that worker runs, further notifications
only raise the pending flag, which the worker checks after every pass. Any
number of notifications during a pass therefore collapse into exactly one
follow-up pass.
"""

from __future__ import annotations

import threading
from logging import getLogger
from typing import TYPE_CHECKING

from .contracts import PassStatus, RebuildPass, ReconcilerState
from .memo import VersionMemo

if TYPE_CHECKING:
    from collections.abc import Iterable
    from concurrent.futures import Executor

    from hostconf.domain.ports import ChangeNotifier, Relabeler

    from .contracts import RebuildCallback, ReloadCallback

log = getLogger(__name__)


class Reconciler:
    """Converges one subsystem toward the data store on each triggered pass."""

    def __init__(
        self,
        name: str,
        rebuild: RebuildCallback,
        *,
        executor: Executor,
        reload: ReloadCallback | None = None,
        relabeler: Relabeler | None = None,
        debounce_seconds: float = 0.0,
        slow_rebuild_seconds: float | None = None,
    ) -> None:
        self.name = name
        self.memo = VersionMemo()
        self._rebuild = rebuild
        self._reload = reload
        self._executor = executor
        self._relabeler = relabeler
        self._debounce_seconds = debounce_seconds
        self._slow_rebuild_seconds = slow_rebuild_seconds

        # guards the flags and counters below
        self._state = threading.Condition()
        # held for the whole rebuild callback
        self._rebuild_lock = threading.Lock()
        self._running = False
        self._pending = False
        self._closed = False
        self._started = 0
        self._completed = 0
        self._last_pass: RebuildPass | None = None
        self._wake = threading.Event()
        self._subscriptions: dict[tuple[int, str], ChangeNotifier] = {}

    def __repr__(self) -> str:
        return f"Reconciler({self.name!r}, {self.status})"

    # Subscriptions -------------------------------------------------------

    def register(self, notifier: ChangeNotifier, sources: Iterable[str]) -> None:
        """Subscribe to ``sources``; subscribing twice to the same source is a no-op."""

        for source in sources:
            key = (id(notifier), source)
            if key in self._subscriptions:
                continue
            notifier.subscribe(source, self)
            self._subscriptions[key] = notifier
            log.debug("%s: subscribed to %s", self.name, source)

    def unregister(self) -> None:
        for (_, source), notifier in list(self._subscriptions.items()):
            notifier.unsubscribe(source, self)
        self._subscriptions.clear()

    @property
    def sources(self) -> list[str]:
        return sorted({source for _, source in self._subscriptions})

    # Triggering ----------------------------------------------------------

    def on_notification(self) -> None:
        with self._state:
            if self._closed:
                return
            if self._running:
                self._pending = True
                return
            self._running = True
        try:
            self._executor.submit(self._run)
        except RuntimeError:
            # executor already shut down
            with self._state:
                self._running = False
                self._state.notify_all()
            log.warning("%s: notification after shutdown ignored", self.name)

    def _run(self) -> None:
        while True:
            if self._debounce_seconds > 0:
                self._wake.wait(self._debounce_seconds)
                self._wake.clear()
            with self._state:
                self._pending = False
                self._started += 1
                generation = self._started
            self._execute(generation)
            with self._state:
                if not self._pending or self._closed:
                    self._running = False
                    self._state.notify_all()
                    return

    def rebuild_now(self) -> RebuildPass:
        """Run one pass in the calling thread, serialized with worker passes."""

        with self._state:
            self._started += 1
            generation = self._started
        return self._execute(generation)

    def _execute(self, generation: int) -> RebuildPass:
        rebuild_pass = RebuildPass(reconciler=self.name, memo=self.memo)
        with self._rebuild_lock:
            timer = self._start_slow_timer()
            try:
                self._rebuild(rebuild_pass)
                if rebuild_pass.changed and self._reload is not None:
                    log.info("%s: artifacts changed, reloading", self.name)
                    self._reload()
            except Exception as exc:
                log.exception("%s: rebuild failed", self.name)
                rebuild_pass.fail(exc)
            else:
                rebuild_pass.succeed()
            finally:
                if timer is not None:
                    timer.cancel()
        self._apply_relabel(rebuild_pass)

        with self._state:
            self._completed = max(self._completed, generation)
            self._last_pass = rebuild_pass
            self._state.notify_all()
        if rebuild_pass.status is PassStatus.SUCCEEDED:
            log.debug(
                "%s: pass %d finished in %.3fs (changed=%s)",
                self.name,
                generation,
                rebuild_pass.duration or 0.0,
                rebuild_pass.changed,
            )
        return rebuild_pass

    def _start_slow_timer(self) -> threading.Timer | None:
        if not self._slow_rebuild_seconds:
            return None
        timer = threading.Timer(
            self._slow_rebuild_seconds,
            log.warning,
            args=(
                "%s: rebuild still running after %.0f seconds",
                self.name,
                self._slow_rebuild_seconds,
            ),
        )
        timer.daemon = True
        timer.start()
        return timer

    def _apply_relabel(self, rebuild_pass: RebuildPass) -> None:
        if self._relabeler is None or not rebuild_pass.relabel:
            return
        try:
            self._relabeler.relabel(sorted(rebuild_pass.relabel))
        except Exception as exc:
            log.exception("%s: relabel failed", self.name)
            if rebuild_pass.error is None:
                rebuild_pass.fail(exc)

    # Observation ---------------------------------------------------------

    @property
    def status(self) -> ReconcilerState:
        with self._state:
            if not self._running:
                return ReconcilerState.IDLE
            if self._pending:
                return ReconcilerState.RUNNING_PENDING
            return ReconcilerState.RUNNING

    @property
    def last_pass(self) -> RebuildPass | None:
        with self._state:
            return self._last_pass

    def wait_for_build(self, timeout: float | None = None) -> bool:
        """Trigger a pass and block until a pass begun after this call has finished.

        Returns ``False`` on timeout or when the reconciler is closed before that
        pass completes.
        """

        with self._state:
            if self._closed:
                return False
            target = self._started + 1
        self.on_notification()
        self._wake.set()
        with self._state:
            self._state.wait_for(
                lambda: self._completed >= target or (self._closed and not self._running),
                timeout,
            )
            return self._completed >= target

    def wait_idle(self, timeout: float | None = None) -> bool:
        with self._state:
            return self._state.wait_for(lambda: not self._running, timeout)

    def close(self) -> None:
        """Stop accepting notifications; an in-flight pass still completes."""

        with self._state:
            self._closed = True
            self._state.notify_all()
        self._wake.set()
