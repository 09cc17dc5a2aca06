"""
Consolidated Extraction Layer -- one scan per table, many derived lookups.

Manifesto:
    Dozens of caches are derived from a handful of metadata tables. Reading
    ``event_attr`` five times per cycle because five caches need different
    projections of it is wasted load on the source database. This layer reads
    each shared table once per cycle into an immutable *view* and lets every
    unit pick its projection from that snapshot.

    - **One scan per view per cycle:** views are memoized with single-flight
    - **Immutable snapshots:** views are frozen dataclasses holding read-only
      mappings and frozensets, safe to share across worker threads
    - **Dependency views:** ``event_attr`` resolves ``event`` and
      ``company_app`` through the same ``get_view`` call
    - **Explicit reset:** ``reset()`` drops every snapshot at cycle start

Architecture:
    ::

        ExtractionLayer
          │
          ├── get_view("company_app")    ──► scan company_app + tmp_transfer
          ├── get_view("user_prop_meta") ──► scan user_prop_meta
          ├── get_view("event")          ──► scan event
          ├── get_view("event_attr")     ──► scan event_attr
          │       └── needs event, company_app (via get_view)
          │
          └── standalone lookups (one query each, not memoized)
                sdk/device/platform, advertising, virtual events, DW

Examples:
    >>> layer = ExtractionLayer(SourceReader(engine))
    >>> layer.event().event_id["7_zg_Login"]
    42
    >>> layer.reset()   # start of the next cycle

Tags:
    cache-sync, extraction, memoization, single-flight, sqlalchemy

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import json
import time
from collections import defaultdict
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from cachesync.core.logging import get_logger
from cachesync.core.once import SingleFlight
from cachesync.source import queries
from cachesync.source.reader import SourceReader
from cachesync.store.records import (
    AdsLinkEvent,
    VirtualEventDefinition,
    VirtualEventProp,
    VirtualUserProp,
)

logger = get_logger(__name__)


def _int(value: Any) -> int:
    """Integer column value; SQL NULL reads as 0."""
    return int(value or 0)


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(mapping)


def _frozen_lists(mapping: dict[str, list]) -> Mapping[str, tuple]:
    return MappingProxyType({key: tuple(values) for key, values in mapping.items()})


# ── Views ────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class CompanyAppView:
    """Projections of ``company_app``.

    An application is *valid* when it is neither soft-deleted nor stopped.
    """

    app_key_app_id: Mapping[str, int]
    cid_by_aid: Mapping[str, str]
    none_auto_create: frozenset[int]
    valid_app_ids: frozenset[int]


@dataclass(frozen=True, slots=True)
class UserPropMetaView:
    prop_id: Mapping[str, int]
    prop_id_original: Mapping[str, str]
    black_props: frozenset[int]
    virtual_user_props: Mapping[str, tuple[VirtualUserProp, ...]]
    virtual_prop_app_ids: frozenset[str]


@dataclass(frozen=True, slots=True)
class EventInfo:
    """Owning-event facts needed to interpret an attribute row."""

    app_id: int
    event_name: str | None
    owner: str | None
    is_valid: bool


@dataclass(frozen=True, slots=True)
class EventView:
    event_id: Mapping[str, int]
    black_events: frozenset[int]
    events: Mapping[int, EventInfo] = field(repr=False)


@dataclass(frozen=True, slots=True)
class EventAttrView:
    attr_id: Mapping[str, int]
    black_attrs: frozenset[int]
    alias: Mapping[str, str]
    column: Mapping[str, str]
    virtual_event_props: Mapping[str, tuple[VirtualEventProp, ...]]
    virtual_attr_ids: frozenset[str]
    virtual_prop_app_ids: frozenset[str]


ConsolidatedView = CompanyAppView | UserPropMetaView | EventView | EventAttrView


class ExtractionLayer:
    """Memoized, thread-safe access to consolidated views and lookups.

    One instance lives for the whole process; the orchestrator calls
    :meth:`reset` at the start of every cycle.
    """

    COMPANY_APP = "company_app"
    USER_PROP_META = "user_prop_meta"
    EVENT = "event"
    EVENT_ATTR = "event_attr"

    VIEWS = (COMPANY_APP, USER_PROP_META, EVENT, EVENT_ATTR)

    def __init__(self, reader: SourceReader):
        self._reader = reader
        self._flight = SingleFlight()
        self._producers: dict[str, Callable[[], ConsolidatedView]] = {
            self.COMPANY_APP: self._load_company_app,
            self.USER_PROP_META: self._load_user_prop_meta,
            self.EVENT: self._load_event,
            self.EVENT_ATTR: self._load_event_attr,
        }

    @property
    def reader(self) -> SourceReader:
        return self._reader

    # ── View access ─────────────────────────────────────────────────────

    def get_view(self, name: str) -> ConsolidatedView:
        """Return the snapshot for view *name*, scanning the source at most once per cycle.

        Raises:
            KeyError: If *name* is not a known view.
            SourceError: If the scan fails. The failure is not remembered;
                the next request scans again.
        """
        try:
            producer = self._producers[name]
        except KeyError:
            raise KeyError(f"Unknown view: {name!r}. Known views: {', '.join(self.VIEWS)}") from None
        return self._flight.get(name, producer)

    def company_app(self) -> CompanyAppView:
        return self.get_view(self.COMPANY_APP)

    def user_prop_meta(self) -> UserPropMetaView:
        return self.get_view(self.USER_PROP_META)

    def event(self) -> EventView:
        return self.get_view(self.EVENT)

    def event_attr(self) -> EventAttrView:
        return self.get_view(self.EVENT_ATTR)

    def is_materialized(self, name: str) -> bool:
        return self._flight.is_materialized(name)

    def reset(self) -> None:
        """Drop every materialized view."""
        self._flight.reset()
        logger.info("views_reset")

    def virtual_prop_app_ids(self) -> frozenset[str]:
        """Apps owning any live virtual user property or virtual event attribute."""
        return self.user_prop_meta().virtual_prop_app_ids | self.event_attr().virtual_prop_app_ids

    # ── View producers ──────────────────────────────────────────────────

    def _load_company_app(self) -> CompanyAppView:
        start = time.monotonic()
        transferred = {_int(v) for v in self._reader.scalars(queries.TRANSFERRED_APP_IDS)}

        app_key_app_id: dict[str, int] = {}
        cid_by_aid: dict[str, str] = {}
        none_auto_create: set[int] = set()
        valid: set[int] = set()

        for row in self._reader.rows(queries.COMPANY_APP):
            app_id = _int(row["id"])
            cid_by_aid[str(app_id)] = str(_int(row["company_id"]))
            if _int(row["is_delete"]) != 0 or _int(row["stop"]) != 0:
                continue
            valid.add(app_id)
            if row["app_key"] is not None and app_id not in transferred:
                app_key_app_id[row["app_key"]] = app_id
            if _int(row["auto_event"]) == 0:
                none_auto_create.add(app_id)

        view = CompanyAppView(
            app_key_app_id=_frozen(app_key_app_id),
            cid_by_aid=_frozen(cid_by_aid),
            none_auto_create=frozenset(none_auto_create),
            valid_app_ids=frozenset(valid),
        )
        logger.info(
            "view_loaded",
            view=self.COMPANY_APP,
            app_keys=len(app_key_app_id),
            apps=len(cid_by_aid),
            none_auto_create=len(none_auto_create),
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return view

    def _load_user_prop_meta(self) -> UserPropMetaView:
        start = time.monotonic()
        prop_id: dict[str, int] = {}
        prop_id_original: dict[str, str] = {}
        black: set[int] = set()
        virtual: dict[str, list[VirtualUserProp]] = defaultdict(list)
        virtual_apps: set[str] = set()

        for row in self._reader.rows(queries.USER_PROP_META):
            pid = _int(row["id"])
            app_id = _int(row["app_id"])
            owner = row["owner"]
            name = row["name"]
            deleted = _int(row["is_delete"]) == 1

            if name is not None:
                prop_id[f"{app_id}_{owner}_{name.upper()}"] = pid
                prop_id_original[f"{app_id}_{owner}_{pid}"] = name
            if deleted:
                black.add(pid)
            if _int(row["attr_type"]) == 1 and not deleted and name is not None:
                virtual_apps.add(str(app_id))
                virtual[str(app_id)].append(
                    VirtualUserProp(name=name, define=row["sql_json"], table_fields=row["table_fields"])
                )

        view = UserPropMetaView(
            prop_id=_frozen(prop_id),
            prop_id_original=_frozen(prop_id_original),
            black_props=frozenset(black),
            virtual_user_props=_frozen_lists(virtual),
            virtual_prop_app_ids=frozenset(virtual_apps),
        )
        logger.info(
            "view_loaded",
            view=self.USER_PROP_META,
            props=len(prop_id),
            black=len(black),
            virtual_apps=len(virtual),
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return view

    def _load_event(self) -> EventView:
        start = time.monotonic()
        event_id: dict[str, int] = {}
        black: set[int] = set()
        events: dict[int, EventInfo] = {}

        for row in self._reader.rows(queries.EVENT):
            eid = _int(row["id"])
            app_id = _int(row["app_id"])
            owner = row["owner"]
            name = row["event_name"]
            deleted = _int(row["is_delete"]) == 1

            events[eid] = EventInfo(app_id=app_id, event_name=name, owner=owner, is_valid=_int(row["is_delete"]) == 0)
            if name is not None:
                event_id[f"{app_id}_{owner}_{name}"] = eid
            if deleted or _int(row["is_stop"]) == 1:
                black.add(eid)

        view = EventView(event_id=_frozen(event_id), black_events=frozenset(black), events=_frozen(events))
        logger.info(
            "view_loaded",
            view=self.EVENT,
            events=len(event_id),
            black=len(black),
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return view

    def _load_event_attr(self) -> EventAttrView:
        events = self.event().events
        valid_apps = self.company_app().valid_app_ids

        start = time.monotonic()
        attr_id: dict[str, int] = {}
        black: set[int] = set()
        alias: dict[str, str] = {}
        column: dict[str, str] = {}
        virtual: dict[str, list[VirtualEventProp]] = defaultdict(list)
        virtual_attr_ids: set[str] = set()
        virtual_apps: set[str] = set()
        orphans = 0

        for row in self._reader.rows(queries.EVENT_ATTR):
            eid = _int(row["event_id"])
            info = events.get(eid)
            if info is None:
                orphans += 1
                continue

            aid = _int(row["attr_id"])
            attr_name = row["attr_name"]
            deleted = _int(row["is_delete"]) == 1
            stopped = _int(row["is_stop"]) == 1
            is_virtual = _int(row["attr_type"]) == 1
            app_id = info.app_id

            if row["column_name"] is not None:
                column[f"{eid}_{aid}"] = row["column_name"]
            if attr_name is not None and app_id in valid_apps:
                attr_id[f"{app_id}_{eid}_{row['owner']}_{attr_name.upper()}"] = aid
            if (deleted or stopped) and not is_virtual:
                black.add(aid)
            if row["alias_name"] and attr_name is not None and info.is_valid:
                alias[f"{app_id}_{info.owner}_{info.event_name}_{attr_name}"] = row["alias_name"]
            if is_virtual and not deleted and attr_name is not None:
                virtual_attr_ids.add(str(aid))
                virtual_apps.add(str(app_id))
                virtual[f"{app_id}_eP_{info.event_name}"].append(
                    VirtualEventProp(name=attr_name, define=row["sql_json"])
                )

        view = EventAttrView(
            attr_id=_frozen(attr_id),
            black_attrs=frozenset(black),
            alias=_frozen(alias),
            column=_frozen(column),
            virtual_event_props=_frozen_lists(virtual),
            virtual_attr_ids=frozenset(virtual_attr_ids),
            virtual_prop_app_ids=frozenset(virtual_apps),
        )
        logger.info(
            "view_loaded",
            view=self.EVENT_ATTR,
            attrs=len(attr_id),
            black=len(black),
            columns=len(column),
            virtual_events=len(virtual),
            orphans=orphans,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return view

    # ── Quota sets ──────────────────────────────────────────────────────

    def forbidden_create_event_app_ids(self) -> set[int]:
        """Apps whose live ``zg`` event count reached their ``event_sum`` quota."""
        return {_int(v) for v in self._reader.scalars(queries.FORBIDDEN_CREATE_EVENT_APP_IDS)}

    def forbidden_create_attr_event_ids(self) -> set[int]:
        """Events whose live attribute count reached their app's ``attr_sum`` quota."""
        return {_int(v) for v in self._reader.scalars(queries.FORBIDDEN_CREATE_ATTR_EVENT_IDS)}

    # ── Standalone lookups ──────────────────────────────────────────────

    def sdk_platform_has_data(self) -> dict[str, int]:
        return {
            f"{_int(row['main_id'])}_{_int(row['sdk_platform'])}": _int(row["has_data"])
            for row in self._reader.rows(queries.SDK_PLATFORM_HAS_DATA)
        }

    def device_prop_ids(self) -> dict[str, int]:
        return {
            f"{_int(row['app_id'])}_{row['owner']}_{row['name']}": _int(row["id"])
            for row in self._reader.rows(queries.DEVICE_PROP)
            if row["name"] is not None
        }

    def upload_data_app_ids(self) -> set[int]:
        return {_int(v) for v in self._reader.scalars(queries.UPLOAD_DATA_APP_IDS)}

    def event_platforms(self) -> set[str]:
        return {f"{_int(r['event_id'])}_{_int(r['platform'])}" for r in self._reader.rows(queries.EVENT_PLATFORM)}

    def event_attr_platforms(self) -> set[str]:
        return {
            f"{_int(r['event_attr_id'])}_{_int(r['platform'])}"
            for r in self._reader.rows(queries.EVENT_ATTR_PLATFORM)
        }

    def device_prop_platforms(self) -> set[str]:
        return {
            f"{_int(r['prop_id'])}_{_int(r['platform'])}" for r in self._reader.rows(queries.DEVICE_PROP_PLATFORM)
        }

    # ── Advertising ─────────────────────────────────────────────────────

    def open_advertising_apps(self) -> dict[str, int]:
        """``app_key`` → app id for apps with advertising enabled."""
        return {
            row["app_key"]: _int(row["app_id"])
            for row in self._reader.rows(queries.OPEN_ADVERTISING_APPS)
            if row["app_key"] is not None
        }

    def link_channel_events(self) -> dict[str, str]:
        """``{link_id}_{event_id}`` → channel event name."""
        return {
            f"{_int(row['link_id'])}_{_int(row['event_id'])}": row["channel_event"]
            for row in self._reader.rows(queries.ADS_LINK_EVENT)
            if row["channel_event"] is not None
        }

    def link_event_ids(self) -> dict[str, int]:
        """Link id → conversion event id."""
        return {str(_int(row["link_id"])): _int(row["event_id"]) for row in self._reader.rows(queries.ADS_LINK_EVENT)}

    def ads_frequency(self) -> set[str]:
        return {
            f"{_int(row['event_id'])}_{_int(row['link_id'])}_{row['zg_id']}"
            for row in self._reader.rows(queries.ADS_FREQUENCY)
        }

    def ads_link_events(self) -> dict[str, AdsLinkEvent]:
        """``{event_id}_{link_id}`` → :class:`AdsLinkEvent`."""
        result: dict[str, AdsLinkEvent] = {}
        for row in self._reader.rows(queries.ADS_LINK_EVENT):
            record = AdsLinkEvent(
                link_id=_int(row["link_id"]),
                event_id=_int(row["event_id"]),
                event_ids=row["event_ids"],
                channel_event=row["channel_event"],
                match_json=row["match_json"],
                frequency=_int(row["frequency"]),
                window_time=row["windows_time"],
            )
            result[record.cache_field] = record
        return result

    # ── Virtual events ──────────────────────────────────────────────────

    def _virtual_event_rows(self):
        """Yield ``(row, definition)`` for every live virtual event whose JSON parses."""
        for row in self._reader.rows(queries.VIRTUAL_EVENT):
            raw = row["event_json"]
            if raw is None:
                continue
            try:
                definition = VirtualEventDefinition.model_validate(json.loads(raw))
            except (ValueError, ValidationError) as e:
                logger.warning(
                    "virtual_event_json_invalid",
                    app_id=row["app_id"],
                    event_name=row["event_name"],
                    error=str(e),
                )
                continue
            yield row, definition

    def virtual_events(self) -> dict[str, list[str]]:
        """``{app_id}_{owner}_{eventName}`` → JSON documents of the virtual events built on it."""
        result: dict[str, list[str]] = defaultdict(list)
        for row, definition in self._virtual_event_rows():
            key = f"{_int(row['app_id'])}_{definition.owner}_{definition.event_name}"
            result[key].append(definition.published(row["event_name"], row["alias_name"]))
        return dict(result)

    def virtual_event_attrs(self) -> dict[str, set[str]]:
        """``{app_id}_{virtualName}_{owner}_{eventName}`` → attribute names."""
        result: dict[str, set[str]] = defaultdict(set)
        for row, definition in self._virtual_event_rows():
            if definition.attrs is None:
                continue
            key = f"{_int(row['app_id'])}_{row['event_name']}_{definition.owner}_{definition.event_name}"
            result[key].update(str(attr) for attr in definition.attrs)
        return dict(result)

    def virtual_event_app_ids(self) -> set[str]:
        return {str(_int(v)) for v in self._reader.scalars(queries.VIRTUAL_EVENT_APP_IDS)}

    # ── DW module ───────────────────────────────────────────────────────

    def current_kudu_tables(self) -> dict[str, str]:
        return {
            row["base_name"]: row["current_name"]
            for row in self._reader.rows(queries.KUDU_EXCHANGE)
            if row["base_name"] is not None and row["current_name"] is not None
        }

    def open_cdp_apps(self) -> dict[str, str]:
        """CDP id-mapping config, restricted to valid apps."""
        valid = self.company_app().valid_app_ids
        return {
            str(_int(row["app_id"])): row["app_config"]
            for row in self._reader.rows(queries.OPEN_CDP)
            if _int(row["app_id"]) in valid
        }

    def year_weeks(self) -> dict[str, str]:
        return {str(_int(row["day"])): str(_int(row["year_week"])) for row in self._reader.rows(queries.YEAR_WEEK)}

    def business_identifiers(self) -> set[str]:
        return {f"{_int(row['company_id'])}_{row['identifier']}" for row in self._reader.rows(queries.BUSINESS)}


__all__ = [
    "CompanyAppView",
    "ConsolidatedView",
    "EventAttrView",
    "EventInfo",
    "EventView",
    "ExtractionLayer",
    "UserPropMetaView",
]
