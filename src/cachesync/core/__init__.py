"""cache-sync core -- domain-agnostic primitives shared by every layer.

Architecture::

    errors.py      Structured error hierarchy (CacheSyncError, PublishError, ...)
    result.py      Result[T] envelope (Ok / Err / try_result)
    logging.py     structlog configuration and logger access
    settings.py    CacheSyncSettings (pydantic-settings, CACHE_SYNC_* env)
    factory.py     Engine / redis client construction from settings
    once.py        SingleFlight -- at-most-once computation per key

Tags:
    cache-sync, core, primitives

Doc-Types:
    - API Reference
"""

from cachesync.core.errors import (
    CacheSyncError,
    ConfigError,
    CycleDeadlineExceeded,
    ErrorCategory,
    OrchestrationError,
    PublishError,
    SourceError,
    StoreConnectionError,
    StoreError,
)
from cachesync.core.result import Err, Ok, Result, try_result

__all__ = [
    "CacheSyncError",
    "ConfigError",
    "CycleDeadlineExceeded",
    "Err",
    "ErrorCategory",
    "Ok",
    "OrchestrationError",
    "PublishError",
    "Result",
    "SourceError",
    "StoreConnectionError",
    "StoreError",
    "try_result",
]
