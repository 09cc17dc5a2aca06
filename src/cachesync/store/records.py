"""
Published record shapes -- the JSON stored inside hash values.

Manifesto:
    A handful of caches store compound records as JSON text. Consumers in
    other services parse those strings, so their shape is a wire contract.
    Each shape is a pydantic model: rows are validated when extracted and
    serialized the same way every cycle.

Serialization contract:
    - compact JSON (no whitespace), UTF-8 kept as-is
    - keys in the field order declared below
    - ``None`` fields are omitted
    - a hash value holding several records is a JSON array whose elements
      are the records' own JSON strings, sorted, so two cycles over the
      same rows produce byte-identical values

Tags:
    cache-sync, serialization, pydantic, wire-format

Doc-Types:
    - API Reference
    - Published Cache Layout
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_WINDOW_TIME = 2_592_000  # 30 days, seconds


def dumps(value: Any) -> str:
    """Compact JSON used for every published value."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class PublishedRecord(BaseModel):
    """Base for records serialized into the cache."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class AdsLinkEvent(PublishedRecord):
    """Advertising link → conversion event configuration."""

    channel_event: str | None = Field(default=None, alias="channelEvent")
    event_id: int = Field(default=0, alias="eventId")
    event_ids: str | None = Field(default=None, alias="eventIds")
    frequency: int = 0
    link_id: int = Field(default=0, alias="linkId")
    match_json: str | None = Field(default=None, alias="matchJson")
    window_time: int = Field(default=DEFAULT_WINDOW_TIME, alias="windowTime")

    @field_validator("window_time", mode="before")
    @classmethod
    def _default_window(cls, value: Any) -> Any:
        if value is None or int(value) <= 0:
            return DEFAULT_WINDOW_TIME
        return value

    @property
    def cache_field(self) -> str:
        return f"{self.event_id}_{self.link_id}"


class VirtualEventProp(PublishedRecord):
    """Virtual (computed) event attribute definition."""

    define: str | None = None
    name: str


class VirtualUserProp(PublishedRecord):
    """Virtual (computed) user property definition."""

    define: str | None = None
    name: str
    table_fields: str | None = Field(default=None, alias="tableFields")


class VirtualEventDefinition(BaseModel):
    """The ``event_json`` document of a virtual event.

    Only the fields the cache keys depend on are declared; every other field
    of the stored document is kept and republished untouched.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    owner: str
    event_name: str = Field(alias="eventName")
    attrs: list[Any] | None = None

    def published(self, virtual_name: str | None, virtual_alias: str | None) -> str:
        """The stored document extended with the virtual event's own names."""
        payload = self.model_dump(by_alias=True, exclude_none=True)
        if virtual_name is not None:
            payload["virtual_name"] = virtual_name
        if virtual_alias is not None:
            payload["virtual_alias"] = virtual_alias
        return dumps(payload)


def json_array(items: Iterable[str]) -> str:
    """JSON array of strings, sorted for a stable representation."""
    return dumps(sorted(items))


__all__ = [
    "AdsLinkEvent",
    "DEFAULT_WINDOW_TIME",
    "PublishedRecord",
    "VirtualEventDefinition",
    "VirtualEventProp",
    "VirtualUserProp",
    "dumps",
    "json_array",
]
