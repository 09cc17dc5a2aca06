"""cache-sync sync layer -- what is synchronized and how a cycle runs.

Architecture::

    catalog.py        SyncUnit definitions, feature groups
    orchestrator.py   Orchestrator.run_cycle -- thread pool, deadline, markers
    results.py        SyncResult, CycleSummary, CycleMarker
"""

from cachesync.sync.catalog import UNITS, SyncUnit, enabled_units
from cachesync.sync.orchestrator import Orchestrator
from cachesync.sync.results import CycleMarker, CycleStatus, CycleSummary, SyncResult

__all__ = [
    "CycleMarker",
    "CycleStatus",
    "CycleSummary",
    "Orchestrator",
    "SyncResult",
    "SyncUnit",
    "UNITS",
    "enabled_units",
]
