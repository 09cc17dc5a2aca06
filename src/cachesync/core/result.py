"""
Result envelope for consistent success/failure handling.

Synchronization units never let an exception escape into the worker pool.
Each unit body returns ``Ok(record_count)`` or ``Err(exception)`` and the
orchestrator pattern-matches on the outcome. One bad unit must not abort the
other thirty.

Examples:
    >>> from cachesync.core.result import Ok, Err, Result
    >>> def parse(raw: str) -> Result[int]:
    ...     if not raw.isdigit():
    ...         return Err(ValueError(raw))
    ...     return Ok(int(raw))
    >>> match parse("42"):
    ...     case Ok(value):
    ...         print(value)
    ...     case Err(error):
    ...         print(error)
    42

Tags:
    result-pattern, error-handling, cache-sync

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from cachesync.core.errors import CacheSyncError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed result carrying the exception that caused it."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.error, CacheSyncError):
            return {"ok": False, "error": self.error.to_dict()}
        return {
            "ok": False,
            "error": {
                "error_type": type(self.error).__name__,
                "message": str(self.error),
            },
        }

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def try_result(f: Callable[[], T]) -> Result[T]:
    """
    Execute a zero-argument callable and wrap the outcome.

    Bridges exception-raising library code (SQLAlchemy, redis) into the
    Result world. Only ``Exception`` subclasses are captured;
    ``KeyboardInterrupt`` and ``SystemExit`` still propagate.

    Examples:
        >>> try_result(lambda: int("7")).unwrap()
        7
        >>> try_result(lambda: int("x")).is_err()
        True
    """
    try:
        return Ok(f())
    except Exception as e:
        return Err(e)


__all__ = ["Ok", "Err", "Result", "try_result"]
