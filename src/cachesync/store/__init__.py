"""cache-sync store layer -- where synchronized datasets are published.

Architecture::

    keys.py      Logical cache names, cycle marker keys, hash-tag rules
    records.py   Pydantic shapes of JSON values stored inside hashes
    adapter.py   KeyValueStore -- scratch key, pipelined batches, RENAME
"""

from cachesync.store.adapter import DatasetShape, KeyValueStore

__all__ = ["DatasetShape", "KeyValueStore"]
