"""
Key-Value Store Adapter -- atomic replace of whole cached datasets.

Manifesto:
    Readers of the cache must never see half a dataset. Writing fields
    straight into the live key would expose every intermediate state of a
    multi-second refresh. Instead each dataset is built under a scratch key
    and swapped in with a single ``RENAME``: readers see the old complete
    value until the instant they see the new complete value.

    - **Scratch then swap:** ``RENAME`` is the only externally visible write
    - **Slot affinity:** in cluster mode both keys carry the same hash tag
    - **Bounded round trips:** writes are pipelined in fixed-size batches
    - **Clean failure:** a failed publish deletes its scratch key and leaves
      the logical key untouched

Architecture:
    ::

        publish(name, shape, dataset)
          │
          ├── empty? ──► DEL logical                      (retraction)
          │
          ├── scratch = "{name}:temp:<ns>"
          ├── for batch in chunks(dataset, pipeline_batch_size):
          │       pipeline(transaction=False)
          │         HSET / SADD scratch ...  × len(batch)
          │       execute()                  (one round trip, all replies)
          ├── RENAME scratch logical
          │
          └── on error: DEL scratch (best effort) ──► PublishError

Examples:
    >>> store = KeyValueStore(redis.Redis(), cluster=False)
    >>> store.publish_hash("appKeyAppIdMap", {"k1": "1", "k2": "2"})
    2
    >>> store.client.hgetall("appKeyAppIdMap")
    {'k1': '1', 'k2': '2'}

Tags:
    cache-sync, redis, atomic-swap, pipeline, cluster

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisClusterException, RedisError

from cachesync.core.errors import PublishError, StoreConnectionError, StoreError
from cachesync.core.logging import get_logger
from cachesync.store import keys

if TYPE_CHECKING:
    from cachesync.core.settings import CacheSyncSettings
    from cachesync.sync.results import CycleMarker

logger = get_logger(__name__)

_STORE_ERRORS = (RedisError, RedisClusterException, OSError)


class DatasetShape(str, Enum):
    """Physical representation of a published dataset."""

    HASH = "hash"
    SET = "set"


def _chunks(items: Iterable[Any], size: int) -> Iterable[list[Any]]:
    iterator = iter(items)
    while chunk := list(itertools.islice(iterator, size)):
        yield chunk


class KeyValueStore:
    """Publishes datasets to a single-node or cluster redis-compatible store.

    Thread-safe: the underlying client is connection-pooled and every
    publish builds its own pipeline.
    """

    def __init__(
        self,
        client: Any,
        *,
        cluster: bool = False,
        pipeline_batch_size: int = 500,
        use_pipeline: bool = True,
    ):
        if pipeline_batch_size <= 0:
            raise ValueError("pipeline_batch_size must be positive")
        self._client = client
        self._cluster = cluster
        self._batch_size = pipeline_batch_size
        self._use_pipeline = use_pipeline

    @classmethod
    def from_settings(cls, settings: CacheSyncSettings) -> KeyValueStore:
        from cachesync.core.factory import create_redis_client

        return cls(
            create_redis_client(settings),
            cluster=settings.redis_cluster,
            pipeline_batch_size=settings.pipeline_batch_size,
            use_pipeline=settings.use_pipeline,
        )

    @property
    def client(self) -> Any:
        return self._client

    @property
    def cluster(self) -> bool:
        return self._cluster

    def logical_key(self, name: str) -> str:
        return keys.logical_key(name, self._cluster)

    # ── Lifecycle ───────────────────────────────────────────────────────

    def ping(self) -> bool:
        """Liveness check; never raises."""
        try:
            return bool(self._client.ping())
        except _STORE_ERRORS as e:
            logger.warning("store_ping_failed", error=str(e))
            return False

    def connect(self) -> KeyValueStore:
        """Verify the store answers before any cycle runs.

        Raises:
            StoreConnectionError: If the store does not answer PING.
        """
        try:
            alive = bool(self._client.ping())
        except _STORE_ERRORS as e:
            raise StoreConnectionError(f"Store unreachable: {e}", cause=e) from e
        if not alive:
            raise StoreConnectionError("Store did not answer PING")
        logger.info("store_connected", cluster=self._cluster)
        return self

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> KeyValueStore:
        return self.connect()

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ── Atomic publish ──────────────────────────────────────────────────

    def publish(self, name: str, shape: DatasetShape, dataset: Mapping[str, str] | Iterable[str]) -> int:
        """Atomically replace cache *name* with *dataset*; return the element count."""
        match shape:
            case DatasetShape.HASH:
                return self.publish_hash(name, dataset)  # type: ignore[arg-type]
            case DatasetShape.SET:
                return self.publish_set(name, dataset)
        raise ValueError(f"Unknown dataset shape: {shape!r}")

    def publish_hash(self, name: str, mapping: Mapping[str, str]) -> int:
        return self._replace(
            name,
            list(mapping.items()),
            queue=lambda target, scratch, item: target.hset(scratch, item[0], item[1]),
        )

    def publish_set(self, name: str, members: Iterable[str]) -> int:
        return self._replace(
            name,
            list(dict.fromkeys(members)),
            queue=lambda target, scratch, member: target.sadd(scratch, member),
        )

    def _replace(self, name: str, items: list[Any], queue: Callable[[Any, str, Any], Any]) -> int:
        logical = self.logical_key(name)

        if not items:
            logger.warning("publish_empty_dataset", cache=name, key=logical)
            try:
                self._client.delete(logical)
            except _STORE_ERRORS as e:
                raise PublishError(f"Delete of empty cache {name} failed: {e}", key=logical, cause=e) from e
            return 0

        scratch = keys.scratch_key(name)
        try:
            self._write(scratch, items, queue)
            self._client.rename(scratch, logical)
        except _STORE_ERRORS as e:
            self._discard(scratch)
            logger.error("publish_failed", cache=name, key=logical, error=str(e))
            raise PublishError(f"Atomic replace of {name} failed: {e}", key=logical, cause=e).with_context(
                cache=name, scratch=scratch
            ) from e

        logger.debug("publish_completed", cache=name, key=logical, size=len(items))
        return len(items)

    def _write(self, scratch: str, items: list[Any], queue: Callable[[Any, str, Any], Any]) -> None:
        if not self._use_pipeline:
            for item in items:
                queue(self._client, scratch, item)
            return

        for batch in _chunks(items, self._batch_size):
            pipe = self._client.pipeline(transaction=False)
            for item in batch:
                queue(pipe, scratch, item)
            pipe.execute()

    def _discard(self, scratch: str) -> None:
        try:
            self._client.delete(scratch)
        except _STORE_ERRORS as e:
            logger.warning("scratch_cleanup_failed", key=scratch, error=str(e))

    # ── Plain commands ──────────────────────────────────────────────────

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except _STORE_ERRORS as e:
            raise StoreError(f"GET {key} failed: {e}", cause=e) from e

    def set(self, key: str, value: str) -> None:
        try:
            self._client.set(key, value)
        except _STORE_ERRORS as e:
            raise StoreError(f"SET {key} failed: {e}", cause=e) from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except _STORE_ERRORS as e:
            raise StoreError(f"DEL {key} failed: {e}", cause=e) from e

    def set_cycle_marker(self, marker: CycleMarker) -> None:
        """Write the cycle status keys (status, timestamp, and version if set)."""
        for key, value in marker.as_mapping().items():
            self.set(key, value)


__all__ = ["DatasetShape", "KeyValueStore"]
