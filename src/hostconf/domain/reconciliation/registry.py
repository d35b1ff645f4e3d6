"""Process-wide set of reconcilers and the worker pool they share."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from logging import getLogger
from typing import TYPE_CHECKING, Self

from .engine import Reconciler

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from types import TracebackType

    from hostconf.domain.ports import ChangeNotifier, Relabeler

    from .contracts import RebuildCallback, ReloadCallback

log = getLogger(__name__)


class ReconcilerRegistry:
    """Owns every reconciler created at startup and tears them down together."""

    def __init__(
        self,
        *,
        notifier: ChangeNotifier,
        relabeler: Relabeler | None = None,
        debounce_seconds: float = 0.0,
        slow_rebuild_seconds: float | None = None,
        max_workers: int = 8,
    ) -> None:
        self._notifier = notifier
        self._relabeler = relabeler
        self._debounce_seconds = debounce_seconds
        self._slow_rebuild_seconds = slow_rebuild_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="reconciler",
        )
        self._reconcilers: dict[str, Reconciler] = {}
        self._sources: dict[str, tuple[str, ...]] = {}
        self._started = False

    def add(
        self,
        name: str,
        rebuild: RebuildCallback,
        *,
        sources: Iterable[str],
        reload: ReloadCallback | None = None,
    ) -> Reconciler:
        if name in self._reconcilers:
            raise ValueError(f"Reconciler already registered: {name}")
        reconciler = Reconciler(
            name,
            rebuild,
            executor=self._executor,
            reload=reload,
            relabeler=self._relabeler,
            debounce_seconds=self._debounce_seconds,
            slow_rebuild_seconds=self._slow_rebuild_seconds,
        )
        self._reconcilers[name] = reconciler
        self._sources[name] = tuple(sources)
        if self._started:
            self._activate(reconciler)
        return reconciler

    def _activate(self, reconciler: Reconciler) -> None:
        reconciler.register(self._notifier, self._sources[reconciler.name])
        # configs are rebuilt once after every daemon start
        reconciler.on_notification()

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        for reconciler in self._reconcilers.values():
            self._activate(reconciler)
        log.info("Started reconcilers: %s", ", ".join(self._reconcilers) or "(none)")

    def get(self, name: str) -> Reconciler:
        return self._reconcilers[name]

    def names(self) -> list[str]:
        return list(self._reconcilers)

    def __iter__(self) -> Iterator[Reconciler]:
        return iter(list(self._reconcilers.values()))

    def __len__(self) -> int:
        return len(self._reconcilers)

    def __contains__(self, name: object) -> bool:
        return name in self._reconcilers

    def wait_for_builds(self, timeout: float | None = None) -> bool:
        """Wait for a fresh pass of every reconciler; ``False`` if any timed out."""

        return all(reconciler.wait_for_build(timeout) for reconciler in self)

    def wait_idle(self, timeout: float | None = None) -> bool:
        return all(reconciler.wait_idle(timeout) for reconciler in self)

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop triggering, drain in-flight passes, then unsubscribe."""

        for reconciler in self:
            reconciler.close()
        if wait:
            self.wait_idle()
        for reconciler in self:
            reconciler.unregister()
        self._executor.shutdown(wait=wait)
        log.info("Reconcilers stopped")

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.shutdown()
