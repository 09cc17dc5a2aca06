"""
cache-sync - Relational-to-key-value cache synchronization engine.

Repopulates a Redis / KVRocks cache from the relational source of truth on a
fixed cycle so that low-latency services never query the database directly.

Packages:
- cachesync.core: settings, logging, errors, result type, single-flight
- cachesync.source: source reader and the consolidated extraction layer
- cachesync.store: key layout, record shapes, atomic-swap store adapter
- cachesync.sync: unit catalog and the cycle orchestrator
"""

__version__ = "1.0.0"
