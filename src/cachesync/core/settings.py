"""
Centralized settings for cache-sync.

Manifesto:
    One validated settings object is built once at startup and passed by
    reference to every component. Nothing reads the environment after that,
    so a feature toggle cannot flip halfway through a cycle.

Every field can be set through a ``CACHE_SYNC_*`` environment variable or a
``.env`` file (e.g. ``CACHE_SYNC_REDIS_CLUSTER=true``).

Tags:
    cache-sync, configuration, settings, pydantic

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

import os
from enum import Enum

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreTopology(str, Enum):
    """Deployment shape of the key-value store."""

    STANDALONE = "standalone"
    CLUSTER = "cluster"


class CacheSyncSettings(BaseSettings):
    """cache-sync configuration.

    Fields
    ──────
    open_advertising        : Sync the advertising unit group
    batch_size              : Rows fetched from the source per round trip
    use_pipeline            : Pipeline element writes (False: one round trip each)
    pipeline_batch_size     : Element writes per pipelined batch
    timeout_seconds         : Wall-clock budget for one cycle
    redis_cluster           : Partitioned store (hash-tagged keys)
    fail_on_partial_failure : Exit non-zero when any unit failed
    """

    model_config = SettingsConfigDict(
        env_prefix="CACHE_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ── Source ───────────────────────────────────────────────────
    database_url: str = Field(default="mysql+mysqlconnector://root@localhost:3306/sdkplatform")
    database_pool_size: int = Field(default=5)
    database_echo: bool = Field(default=False)
    batch_size: int = Field(default=1000, description="Rows fetched per round trip")

    # ── Store ────────────────────────────────────────────────────
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_password: str | None = Field(default=None)
    redis_cluster: bool = Field(default=False)
    redis_timeout_ms: int = Field(default=60_000)
    redis_max_connections: int = Field(default=32)

    # ── Publish ──────────────────────────────────────────────────
    use_pipeline: bool = Field(default=True)
    pipeline_batch_size: int = Field(default=500)

    # ── Cycle ────────────────────────────────────────────────────
    open_advertising: bool = Field(default=True)
    timeout_seconds: int = Field(default=300)
    max_workers: int | None = Field(default=None, description="Defaults to os.cpu_count()")
    fail_on_partial_failure: bool = Field(default=False)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="json | console | auto")

    @model_validator(mode="after")
    def _validate_limits(self) -> CacheSyncSettings:
        for name in ("batch_size", "pipeline_batch_size", "timeout_seconds", "redis_timeout_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.max_workers is not None and self.max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")
        if self.log_format not in ("json", "console", "auto"):
            raise ValueError(f"log_format must be json, console or auto, got {self.log_format!r}")
        return self

    # ── Derived properties ───────────────────────────────────────

    @property
    def topology(self) -> StoreTopology:
        return StoreTopology.CLUSTER if self.redis_cluster else StoreTopology.STANDALONE

    @property
    def worker_count(self) -> int:
        return self.max_workers or os.cpu_count() or 1

    @property
    def redis_timeout_seconds(self) -> float:
        return self.redis_timeout_ms / 1000

    @property
    def json_logs(self) -> bool | None:
        if self.log_format == "auto":
            return None
        return self.log_format == "json"

    def enabled_groups(self) -> frozenset[str]:
        """Optional unit groups switched on by feature toggles."""
        groups = set()
        if self.open_advertising:
            groups.add("advertising")
        return frozenset(groups)


_settings_cache: dict[str, CacheSyncSettings] = {}


def get_settings(*, _force_reload: bool = False) -> CacheSyncSettings:
    """Load, validate, and cache the process-wide settings."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = CacheSyncSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "CacheSyncSettings",
    "StoreTopology",
    "get_settings",
    "clear_settings_cache",
]
