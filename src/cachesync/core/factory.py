"""
Factory functions that create infrastructure clients from settings.

Features:
    - ``create_database_engine()``: SQLAlchemy engine for the relational source
    - ``create_redis_client()``: single-node ``Redis`` or ``RedisCluster``

Both clients are long-lived: built once at startup, shared by every worker
thread, released through their owners' ``close()``.

Tags:
    cache-sync, configuration, factory-pattern, sqlalchemy, redis

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import redis
from redis.cluster import RedisCluster
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

if TYPE_CHECKING:
    from .settings import CacheSyncSettings


def create_database_engine(settings: CacheSyncSettings) -> Engine:
    """Create a SQLAlchemy :class:`~sqlalchemy.engine.Engine`.

    SQLite gets ``check_same_thread=False`` (worker threads share the
    engine); server databases get connection-pool tuning sized to the
    worker pool so no unit waits for a connection.
    """
    if settings.database_url.startswith("sqlite"):
        return create_engine(
            settings.database_url,
            echo=settings.database_echo,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_size=max(settings.database_pool_size, settings.worker_count),
        pool_pre_ping=True,
    )


def create_redis_client(settings: CacheSyncSettings) -> Any:
    """Create a redis client for the configured topology.

    Responses are decoded to ``str``; cached values are UTF-8 text.
    """
    common: dict[str, Any] = {
        "password": settings.redis_password or None,
        "socket_timeout": settings.redis_timeout_seconds,
        "socket_connect_timeout": settings.redis_timeout_seconds,
        "decode_responses": True,
    }
    if settings.redis_cluster:
        return RedisCluster(
            host=settings.redis_host,
            port=settings.redis_port,
            max_connections=settings.redis_max_connections,
            **common,
        )
    pool = redis.ConnectionPool(
        host=settings.redis_host,
        port=settings.redis_port,
        max_connections=settings.redis_max_connections,
        **common,
    )
    return redis.Redis(connection_pool=pool)


__all__ = ["create_database_engine", "create_redis_client"]
