"""cache-sync source layer -- read-only access to the relational metadata.

Architecture::

    reader.py       SourceReader -- SQLAlchemy text queries, chunked fetch
    queries.py      SQL for every scan
    extraction.py   ExtractionLayer -- consolidated views + standalone lookups
"""

from cachesync.source.extraction import (
    CompanyAppView,
    EventAttrView,
    EventView,
    ExtractionLayer,
    UserPropMetaView,
)
from cachesync.source.reader import SourceReader

__all__ = [
    "CompanyAppView",
    "EventAttrView",
    "EventView",
    "ExtractionLayer",
    "SourceReader",
    "UserPropMetaView",
]
