"""
Structured error types for cache-sync.

Every failure the engine raises carries a category, a retryable flag, a
context dict and an optional chained cause. The category decides how far an
error travels:

- **Unit errors** (SOURCE, STORE) are caught per synchronization unit and
  recorded in its SyncResult. Siblings keep running.
- **Cycle-fatal errors** (ORCHESTRATION) escape ``Orchestrator.run_cycle``.
- **Startup-fatal errors** (CONNECTION, CONFIG) stop the process before any
  cycle runs.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                       CacheSyncError                          │
        │           (category, retryable, context, cause)               │
        ├──────────────────────────────────────────────────────────────┤
        │  SourceError        StoreError              ConfigError       │
        │  (SOURCE)           (STORE)                 (CONFIG)          │
        │                        │                                      │
        │                  PublishError                                 │
        │                  StoreConnectionError (CONNECTION)            │
        │                                                               │
        │  OrchestrationError (ORCHESTRATION)                           │
        │        │                                                      │
        │  CycleDeadlineExceeded                                        │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = PublishError("rename failed").with_context(unit="appKeyAppIdMap")
    >>> error.context["unit"]
    'appKeyAppIdMap'
    >>> error.to_dict()["category"]
    'STORE'

Tags:
    error-handling, exception-hierarchy, cache-sync

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cachesync.sync.results import CycleSummary


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    SOURCE = "SOURCE"
    STORE = "STORE"
    CONNECTION = "CONNECTION"
    CONFIG = "CONFIG"
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"


class CacheSyncError(Exception):
    """
    Base exception for all cache-sync errors.

    Subclasses set ``default_category`` and ``default_retryable`` so call
    sites only pass a message (and usually a cause).

    Examples:
        >>> error = CacheSyncError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CacheSyncError:
        """
        Add context to this error (fluent API).

        Usage:
            raise SourceError("scan failed").with_context(view="event")
        """
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# UNIT ERRORS (recorded per synchronization unit)
# =============================================================================


class SourceError(CacheSyncError):
    """A read query against the relational source failed."""

    default_category = ErrorCategory.SOURCE
    default_retryable = True


class StoreError(CacheSyncError):
    """Key-value store command failed."""

    default_category = ErrorCategory.STORE
    default_retryable = True


class PublishError(StoreError):
    """Atomic replace of one logical key failed; the logical key is untouched."""

    def __init__(self, message: str, *, key: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.key = key
        if key is not None:
            self.context.setdefault("key", key)


# =============================================================================
# STARTUP-FATAL ERRORS
# =============================================================================


class StoreConnectionError(StoreError):
    """The store is unreachable or failed its liveness check at startup."""

    default_category = ErrorCategory.CONNECTION
    default_retryable = False


class ConfigError(CacheSyncError):
    """Invalid or missing configuration."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# CYCLE-FATAL ERRORS
# =============================================================================


class OrchestrationError(CacheSyncError):
    """The worker pool could not dispatch or was interrupted."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class CycleDeadlineExceeded(OrchestrationError):
    """Units did not finish within the cycle's wall-clock budget.

    ``summary`` holds the partial cycle summary: finished units with their
    real results, abandoned units recorded as failures.
    """

    def __init__(
        self,
        message: str,
        *,
        pending: list[str] | None = None,
        summary: CycleSummary | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.pending = list(pending or [])
        self.summary = summary
        if self.pending:
            self.context.setdefault("pending", self.pending)


def is_fatal(error: Exception) -> bool:
    """Whether an error must terminate the process rather than one unit."""
    if isinstance(error, CacheSyncError):
        return error.category in (
            ErrorCategory.ORCHESTRATION,
            ErrorCategory.CONNECTION,
            ErrorCategory.CONFIG,
        )
    return False


__all__ = [
    "ErrorCategory",
    "CacheSyncError",
    "SourceError",
    "StoreError",
    "PublishError",
    "StoreConnectionError",
    "ConfigError",
    "OrchestrationError",
    "CycleDeadlineExceeded",
    "is_fatal",
]
