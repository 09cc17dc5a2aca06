"""Per-unit and per-cycle synchronization results.

Example:
    >>> result = SyncResult("appKeyAppIdMap")
    >>> result.finish(2)
    >>> result.success, result.record_count
    (True, 2)
    >>> summary = CycleSummary("c1", [result], result.started_at, utcnow())
    >>> summary.status
    <CycleStatus.SUCCESS: 'SUCCESS'>
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from cachesync.store import keys

MAX_ERROR_LENGTH = 500
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def truncate_error(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    return message if len(message) <= limit else message[: limit - 3] + "..."


class CycleStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"


@dataclass
class SyncResult:
    """Outcome of one synchronization unit.

    Created when the unit starts and mutated only by the thread running it.
    """

    name: str
    record_count: int = 0
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    success: bool = True
    error_message: str | None = None

    def finish(self, record_count: int) -> None:
        self.record_count = record_count
        self.finished_at = utcnow()

    def fail(self, message: str) -> None:
        self.success = False
        self.error_message = truncate_error(message)
        self.finished_at = utcnow()

    @property
    def duration_ms(self) -> float | None:
        if self.finished_at is None:
            return None
        return round((self.finished_at - self.started_at).total_seconds() * 1000, 2)

    def __str__(self) -> str:
        line = f"[{self.name}] count={self.record_count}, cost={self.duration_ms}ms, success={self.success}"
        if self.error_message is not None:
            line += f", error={self.error_message}"
        return line

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "record_count": self.record_count,
            "success": self.success,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass(frozen=True)
class CycleMarker:
    """Cycle-level status written under ``sync:*`` for downstream readers.

    ``version`` is the completion time in epoch milliseconds and is only set
    on the final marker.
    """

    status: CycleStatus
    timestamp: str
    version: int | None = None

    @classmethod
    def running(cls, now: datetime | None = None) -> CycleMarker:
        return cls(CycleStatus.RUNNING, _format_timestamp(now))

    @classmethod
    def completed(cls, status: CycleStatus, now: datetime | None = None) -> CycleMarker:
        return cls(status, _format_timestamp(now), version=time.time_ns() // 1_000_000)

    def as_mapping(self) -> dict[str, str]:
        values = {keys.SYNC_STATUS: self.status.value, keys.SYNC_TIMESTAMP: self.timestamp}
        if self.version is not None:
            values[keys.SYNC_VERSION] = str(self.version)
        return values


def _format_timestamp(now: datetime | None) -> str:
    # Local wall clock, as downstream dashboards display it.
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


@dataclass
class CycleSummary:
    """Aggregate of one cycle's unit results."""

    cycle_id: str
    results: list[SyncResult]
    started_at: datetime
    finished_at: datetime | None = None

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def total_records(self) -> int:
        return sum(r.record_count for r in self.results)

    @property
    def failed_units(self) -> list[SyncResult]:
        return [r for r in self.results if not r.success]

    @property
    def status(self) -> CycleStatus:
        return CycleStatus.SUCCESS if self.failed == 0 else CycleStatus.PARTIAL_FAILURE

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def exit_code(self, fail_on_partial_failure: bool = False) -> int:
        """Process exit code for this cycle under the configured policy."""
        return 1 if fail_on_partial_failure and self.failed else 0

    def summary_lines(self) -> list[str]:
        """Human-readable report: totals, one line per unit, failed units last."""
        duration_ms = round((self.duration_seconds or 0.0) * 1000)
        lines = [
            "Cache Sync Summary",
            f"Total tasks: {self.total}, Success: {self.successful}, Failed: {self.failed}",
            f"Total records: {self.total_records}, Time: {duration_ms} ms",
        ]
        lines.extend(str(r) for r in self.results)
        if self.failed:
            lines.append("Failed tasks:")
            lines.extend(f"  - {r.name}: {r.error_message}" for r in self.failed_units)
        return lines

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "status": self.status.value,
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "total_records": self.total_records,
            "duration_seconds": self.duration_seconds,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "results": [r.to_dict() for r in self.results],
        }


__all__ = [
    "CycleMarker",
    "CycleStatus",
    "CycleSummary",
    "MAX_ERROR_LENGTH",
    "SyncResult",
    "truncate_error",
    "utcnow",
]
