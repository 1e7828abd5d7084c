"""Memoization of element matrices.

Entries are created the first time they are requested and are then kept
for as long as the cache lives. Concurrent requests for the same key wait
for the first one to finish, so each key is constructed at most once.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Iterator
from concurrent.futures import Future
from typing import Generic, TypeVar

_K = TypeVar("_K", bound=Hashable)
_V = TypeVar("_V")


class MatrixCache(Generic[_K, _V]):
    """Thread-safe cache with at most one construction per key.

    Parameters
    ----------
    creator : (key) -> value, optional
        Function used to create missing entries when the cache is indexed.
        It can be overridden per call of :meth:`get`.

    name : str, optional
        Name of the cache, used in its representation.
    """

    name: str
    _creator: Callable[[_K], _V] | None
    _entries: dict[_K, _V]
    _pending: dict[_K, Future[_V]]
    _failed: dict[_K, BaseException]
    _lock: threading.Lock

    def __init__(
        self, creator: Callable[[_K], _V] | None = None, name: str = "MatrixCache"
    ) -> None:
        self.name = name
        self._creator = creator
        self._entries = dict()
        self._pending = dict()
        self._failed = dict()
        self._lock = threading.Lock()

    def get(self, key: _K, create: Callable[[], _V] | None = None) -> _V:
        """Return the entry for the key, creating it if needed.

        Parameters
        ----------
        key : Hashable
            Key of the entry.

        create : () -> value, optional
            Function creating the entry. If not given, the creator of the cache
            is called with the key.

        Returns
        -------
        value
            Cached entry.
        """
        # Populated entries are never replaced, so no locking is needed here.
        res = self._entries.get(key, None)
        if res is not None:
            return res

        with self._lock:
            if key in self._entries:
                return self._entries[key]
            if key in self._failed:
                raise self._failed[key]
            pending = self._pending.get(key, None)
            owner = pending is None
            if pending is None:
                pending = Future()
                self._pending[key] = pending

        if not owner:
            return pending.result()

        try:
            if create is not None:
                value = create()
            elif self._creator is not None:
                value = self._creator(key)
            else:
                raise KeyError(f"{self.name} has no entry for {key!r} and no creator.")
        except BaseException as exc:
            with self._lock:
                self._failed[key] = exc
                del self._pending[key]
            pending.set_exception(exc)
            raise

        with self._lock:
            self._entries[key] = value
            del self._pending[key]
        pending.set_result(value)
        return value

    def __getitem__(self, key: _K) -> _V:
        """Return the entry for the key, creating it with the cache's creator."""
        return self.get(key)

    def already_created(self, key: _K) -> bool:
        """Check if an entry for the key has been created."""
        return key in self._entries

    def __contains__(self, key: object) -> bool:
        """Check if an entry for the key has been created."""
        return key in self._entries

    def __len__(self) -> int:
        """Return number of created entries."""
        return len(self._entries)

    def keys(self) -> Iterator[_K]:
        """Iterate over keys of created entries."""
        with self._lock:
            keys = list(self._entries)
        return iter(keys)

    def __repr__(self) -> str:
        """Return a short summary."""
        return f"<{self.name} with {len(self)} entries>"
