"""Last-applied version tokens, keyed by tracked entity."""

from __future__ import annotations

from collections.abc import Hashable
from threading import Lock
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


type VersionToken = Hashable


class VersionMemo:
    """Key to token map owned by one reconciler.

    Only an optimisation: a missing or stale entry just forces a recompute and a
    commit that will usually come back unchanged.
    """

    __slots__ = ("_lock", "_tokens")

    def __init__(self) -> None:
        self._lock = Lock()
        self._tokens: dict[Hashable, VersionToken] = {}

    def is_current(self, key: Hashable, token: VersionToken) -> bool:
        with self._lock:
            return key in self._tokens and self._tokens[key] == token

    def get(self, key: Hashable) -> VersionToken | None:
        with self._lock:
            return self._tokens.get(key)

    def remember(self, key: Hashable, token: VersionToken) -> None:
        with self._lock:
            self._tokens[key] = token

    def forget(self, key: Hashable) -> None:
        with self._lock:
            self._tokens.pop(key, None)

    def retain(self, keys: Iterable[Hashable]) -> None:
        """Drop every entry whose key is not in ``keys``."""

        wanted = set(keys)
        with self._lock:
            for key in [key for key in self._tokens if key not in wanted]:
                del self._tokens[key]

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
