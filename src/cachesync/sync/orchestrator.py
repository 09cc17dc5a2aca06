"""
Orchestrator -- one synchronization cycle, bounded parallelism, one deadline.

Manifesto:
    A cycle refreshes a few dozen independent caches. They should run in
    parallel, a slow or broken one must not take its siblings down, and the
    whole cycle must finish within a fixed wall-clock budget so the next
    scheduled run never overlaps a stuck one.

    - **Local failures:** each unit's outcome is captured as a ``Result``
    - **Fixed pool:** ``max_workers`` threads, one blocking task per unit
    - **Hard deadline:** the cycle fails; stuck units are left on daemon threads
    - **Markers:** ``sync:status`` goes RUNNING → SUCCESS | PARTIAL_FAILURE

Architecture:
    ::

        run_cycle()
          │
          ├── 1. extraction.reset()
          ├── 2. marker RUNNING
          ├── 3. units = enabled_units(settings)
          ├── 4. worker_count daemon threads drain the unit queue
          │        _run_unit(i) for each unit ──► slots[i] = SyncResult
          ├── 5. wait for every unit until timeout_seconds
          │        └── pending? ──► stop the queue, CycleDeadlineExceeded
          ├── 6. marker SUCCESS | PARTIAL_FAILURE (+ version)
          └── 7. log summary ──► CycleSummary

Examples:
    >>> orchestrator = Orchestrator(settings, ExtractionLayer(reader), store)
    >>> summary = orchestrator.run_cycle()
    >>> summary.status
    <CycleStatus.SUCCESS: 'SUCCESS'>

Tags:
    cache-sync, orchestration, thread-pool, deadline, concurrency

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import contextvars
import queue
import threading
import time
import uuid
from collections.abc import Sequence
from datetime import datetime

from cachesync.core.errors import CycleDeadlineExceeded, OrchestrationError, StoreError
from cachesync.core.logging import LogContext, get_logger
from cachesync.core.result import Err, Ok, try_result
from cachesync.core.settings import CacheSyncSettings
from cachesync.source.extraction import ExtractionLayer
from cachesync.store.adapter import KeyValueStore
from cachesync.sync.catalog import UNITS, SyncUnit, enabled_units
from cachesync.sync.results import CycleMarker, CycleSummary, SyncResult, utcnow

logger = get_logger(__name__)


class Orchestrator:
    """Runs every enabled unit once per :meth:`run_cycle`.

    Not re-entrant: one cycle at a time per instance.
    """

    def __init__(
        self,
        settings: CacheSyncSettings,
        extraction: ExtractionLayer,
        store: KeyValueStore,
        units: Sequence[SyncUnit] = UNITS,
    ):
        self._settings = settings
        self._extraction = extraction
        self._store = store
        self._units = tuple(units)

    @property
    def units(self) -> tuple[SyncUnit, ...]:
        return self._units

    def run_cycle(self) -> CycleSummary:
        """Synchronize every enabled unit.

        Returns:
            The cycle summary. Individual unit failures are recorded there.

        Raises:
            CycleDeadlineExceeded: Units were still outstanding after
                ``timeout_seconds``. Carries the partial summary.
            OrchestrationError: The worker pool could not dispatch.
        """
        cycle_id = uuid.uuid4().hex[:12]
        with LogContext(cycle_id=cycle_id):
            started_at = utcnow()
            self._extraction.reset()
            self._write_marker(CycleMarker.running())

            units = enabled_units(self._settings, self._units)
            logger.info(
                "cycle_started",
                units=len(units),
                workers=self._settings.worker_count,
                timeout_seconds=self._settings.timeout_seconds,
            )

            slots = self._dispatch(cycle_id, units, started_at)

            summary = CycleSummary(cycle_id, slots, started_at, utcnow())
            self._write_marker(CycleMarker.completed(summary.status))
            self._log_summary(summary)
            return summary

    # ── Dispatch ────────────────────────────────────────────────────────

    def _dispatch(self, cycle_id: str, units: list[SyncUnit], started_at: datetime) -> list[SyncResult]:
        slots: list[SyncResult | None] = [None] * len(units)
        finished = [threading.Event() for _ in units]
        started: set[int] = set()
        cancelled = threading.Event()
        lock = threading.Lock()

        todo: queue.SimpleQueue[int] = queue.SimpleQueue()
        for index in range(len(units)):
            todo.put(index)

        def _worker() -> None:
            while True:
                with lock:
                    if cancelled.is_set():
                        return
                    try:
                        index = todo.get_nowait()
                    except queue.Empty:
                        return
                    started.add(index)
                try:
                    self._run_unit(units[index], index, slots)
                finally:
                    finished[index].set()

        # Daemon threads: a unit stuck past the deadline must not keep the process alive.
        try:
            for n in range(min(self._settings.worker_count, len(units))):
                context = contextvars.copy_context()
                threading.Thread(
                    target=context.run,
                    args=(_worker,),
                    name=f"cache-sync-{n}",
                    daemon=True,
                ).start()
        except RuntimeError as e:
            cancelled.set()
            raise OrchestrationError(f"Unit dispatch failed: {e}", cause=e) from e

        deadline = time.monotonic() + self._settings.timeout_seconds
        for event in finished:
            event.wait(max(0.0, deadline - time.monotonic()))

        with lock:
            pending = [index for index, event in enumerate(finished) if not event.is_set()]
            if pending:
                cancelled.set()
            running = set(started)
        if pending:
            raise self._deadline_exceeded(cycle_id, units, slots, pending, running, started_at)

        return [slot for slot in slots if slot is not None]

    def _deadline_exceeded(
        self,
        cycle_id: str,
        units: list[SyncUnit],
        slots: list[SyncResult | None],
        pending: list[int],
        running: set[int],
        started_at: datetime,
    ) -> CycleDeadlineExceeded:
        results: list[SyncResult] = []
        for index, unit in enumerate(units):
            slot = slots[index]
            if index not in pending and slot is not None:
                results.append(slot)
                continue
            # Running threads keep their own slot; report a detached copy.
            abandoned = SyncResult(unit.name)
            if slot is not None:
                abandoned.started_at = slot.started_at
            abandoned.fail(
                "abandoned: cycle deadline exceeded" if index in running else "cancelled: cycle deadline exceeded"
            )
            results.append(abandoned)

        summary = CycleSummary(cycle_id, results, started_at, utcnow())
        names = [units[i].name for i in pending]
        logger.error(
            "cycle_deadline_exceeded",
            timeout_seconds=self._settings.timeout_seconds,
            pending=names,
            completed=summary.successful,
        )
        return CycleDeadlineExceeded(
            f"Cycle exceeded {self._settings.timeout_seconds}s with {len(names)} unit(s) outstanding",
            pending=names,
            summary=summary,
        )

    def _run_unit(self, unit: SyncUnit, index: int, slots: list[SyncResult | None]) -> None:
        result = SyncResult(unit.name)
        slots[index] = result

        match try_result(lambda: self._store.publish(unit.name, unit.shape, unit.produce(self._extraction))):
            case Ok(value=count):
                result.finish(count)
                logger.info("unit_synced", unit=unit.name, records=count, duration_ms=result.duration_ms)
            case Err(error=error):
                result.fail(str(error) or type(error).__name__)
                logger.error(
                    "unit_failed",
                    unit=unit.name,
                    error=result.error_message,
                    error_type=type(error).__name__,
                )

    # ── Markers and reporting ───────────────────────────────────────────

    def _write_marker(self, marker: CycleMarker) -> None:
        try:
            self._store.set_cycle_marker(marker)
        except StoreError as e:
            logger.warning("cycle_marker_write_failed", status=marker.status.value, error=str(e))

    def _log_summary(self, summary: CycleSummary) -> None:
        logger.info(
            "cycle_summary",
            status=summary.status.value,
            total=summary.total,
            successful=summary.successful,
            failed=summary.failed,
            total_records=summary.total_records,
            duration_seconds=summary.duration_seconds,
        )
        for result in summary.results:
            logger.debug("unit_result", unit=result.name, detail=str(result))
        for result in summary.failed_units:
            logger.error("unit_failed_in_cycle", unit=result.name, error=result.error_message)


__all__ = ["Orchestrator"]
