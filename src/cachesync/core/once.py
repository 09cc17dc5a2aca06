"""
Single-flight memoization -- compute each key at most once until reset.

Manifesto:
    Several synchronization units read the same consolidated view. When
    they ask concurrently, exactly one of them should scan the source; the
    rest should wait for that scan and then share its snapshot.

    - **One scan per key:** the first caller owns the computation
    - **Publication barrier:** waiters block on a ``Future`` and only ever
      observe the finished value
    - **No locks across calls:** the registry lock guards only the dict, so a
      producer may itself call ``get`` for another key (dependency views)
      without deadlocking sibling requests
    - **Failures are not memoized:** a failed attempt is delivered to its
      waiters and then forgotten; the next caller retries

Architecture:
    ::

        get(key, producer)
          │
          ├── lock: key in _futures? ──yes──► future.result()   (waiter)
          │          │no
          │          └── create Future, store, become owner
          │
          └── owner (no lock held):
                value = producer()
                future.set_result(value) ──► wakes every waiter
                (on error: set_exception, drop entry)

Examples:
    >>> flight = SingleFlight()
    >>> flight.get("answer", lambda: 42)
    42
    >>> flight.get("answer", lambda: 0)
    42
    >>> flight.reset()
    >>> flight.get("answer", lambda: 0)
    0

Tags:
    concurrency, memoization, single-flight, cache-sync

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Hashable, TypeVar

T = TypeVar("T")


class SingleFlight:
    """Thread-safe at-most-once computation keyed by name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._futures: dict[Hashable, Future] = {}

    def get(self, key: Hashable, producer: Callable[[], T]) -> T:
        """Return the value for *key*, running *producer* only if nobody has yet.

        Raises whatever *producer* raised, to the owner and to every caller
        that was waiting on the same attempt.
        """
        with self._lock:
            future = self._futures.get(key)
            owner = future is None
            if owner:
                future = Future()
                future.set_running_or_notify_cancel()
                self._futures[key] = future

        if not owner:
            return future.result()

        try:
            value = producer()
        except BaseException as exc:
            with self._lock:
                if self._futures.get(key) is future:
                    del self._futures[key]
            future.set_exception(exc)
            raise
        future.set_result(value)
        return value

    def is_materialized(self, key: Hashable) -> bool:
        with self._lock:
            future = self._futures.get(key)
        return future is not None and future.done() and future.exception() is None

    def reset(self) -> None:
        """Forget every materialized value.

        Callers already waiting on an in-flight computation still receive
        its result; later callers start a new one.
        """
        with self._lock:
            self._futures.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._futures)


__all__ = ["SingleFlight"]
