"""
Unit Catalog -- the fixed list of caches synchronized every cycle.

Each :class:`SyncUnit` names one logical cache, its physical shape, and a
producer that derives its dataset from the :class:`ExtractionLayer`. Units
never talk to each other; sharing happens only through memoized views.

Producers return string-only datasets (``dict[str, str]`` for hashes,
``set[str]`` for sets). List-valued hash fields are JSON arrays, see
:mod:`cachesync.store.records`.

Units in an optional *group* run only when the group is enabled in settings
(``advertising`` follows ``open_advertising``); units without a group always
run.

Tags:
    cache-sync, catalog, registry

Doc-Types:
    - API Reference
    - Published Cache Layout
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from cachesync.source.extraction import ExtractionLayer
from cachesync.store import keys
from cachesync.store.adapter import DatasetShape
from cachesync.store.records import PublishedRecord, json_array

if TYPE_CHECKING:
    from cachesync.core.settings import CacheSyncSettings

ADVERTISING = "advertising"

Dataset = dict[str, str] | set[str]


@dataclass(frozen=True)
class SyncUnit:
    """One cache refreshed per cycle."""

    name: str
    shape: DatasetShape
    producer: Callable[[ExtractionLayer], Dataset]
    group: str | None = None

    def produce(self, extraction: ExtractionLayer) -> Dataset:
        return self.producer(extraction)

    def enabled(self, groups: frozenset[str]) -> bool:
        return self.group is None or self.group in groups


# ── Dataset conversion ──────────────────────────────────────────────────


def _str_map(mapping: Mapping[Any, Any]) -> dict[str, str]:
    return {str(k): str(v) for k, v in mapping.items()}


def _str_set(items: Iterable[Any]) -> set[str]:
    return {str(item) for item in items}


def _record_lists(mapping: Mapping[str, Iterable[PublishedRecord]]) -> dict[str, str]:
    return {key: json_array(record.to_json() for record in records) for key, records in mapping.items()}


def _hash(name: str, producer: Callable[[ExtractionLayer], Dataset], group: str | None = None) -> SyncUnit:
    return SyncUnit(name, DatasetShape.HASH, producer, group)


def _set(name: str, producer: Callable[[ExtractionLayer], Dataset], group: str | None = None) -> SyncUnit:
    return SyncUnit(name, DatasetShape.SET, producer, group)


def build_catalog() -> tuple[SyncUnit, ...]:
    """Every unit, in dispatch order."""
    return (
        # Core lookups
        _hash(keys.APP_KEY_APP_ID_MAP, lambda x: _str_map(x.company_app().app_key_app_id)),
        _hash(keys.APP_ID_SDK_HAS_DATA_MAP, lambda x: _str_map(x.sdk_platform_has_data())),
        _hash(keys.APP_ID_PROP_ID_MAP, lambda x: _str_map(x.user_prop_meta().prop_id)),
        _hash(keys.APP_ID_PROP_ID_ORIGINAL_MAP, lambda x: dict(x.user_prop_meta().prop_id_original)),
        _hash(keys.APP_ID_EVENT_ID_MAP, lambda x: _str_map(x.event().event_id)),
        _hash(keys.APP_ID_EVENT_ATTR_ID_MAP, lambda x: _str_map(x.event_attr().attr_id)),
        _hash(keys.APP_ID_DEVICE_PROP_ID_MAP, lambda x: _str_map(x.device_prop_ids())),
        # Blacklists and quotas
        _set(keys.BLACK_USER_PROP_SET, lambda x: _str_set(x.user_prop_meta().black_props)),
        _set(keys.BLACK_EVENT_ID_SET, lambda x: _str_set(x.event().black_events)),
        _set(keys.BLACK_EVENT_ATTR_ID_SET, lambda x: _str_set(x.event_attr().black_attrs)),
        _set(keys.APP_ID_CREATE_EVENT_FORBID_SET, lambda x: _str_set(x.forbidden_create_event_app_ids())),
        _set(keys.APP_ID_UPLOAD_DATA_SET, lambda x: _str_set(x.upload_data_app_ids())),
        _set(keys.APP_ID_NONE_AUTO_CREATE_SET, lambda x: _str_set(x.company_app().none_auto_create)),
        _set(keys.EVENT_ID_CREATE_ATTR_FORBIDDEN_SET, lambda x: _str_set(x.forbidden_create_attr_event_ids())),
        # Platforms
        _set(keys.EVENT_ID_PLATFORM, lambda x: x.event_platforms()),
        _set(keys.EVENT_ATTR_PLATFORM, lambda x: x.event_attr_platforms()),
        _set(keys.DEVICE_PROP_PLATFORM, lambda x: x.device_prop_platforms()),
        # Virtual events and properties
        _hash(keys.VIRTUAL_EVENT_MAP, lambda x: {k: json_array(v) for k, v in x.virtual_events().items()}),
        _hash(keys.VIRTUAL_EVENT_ATTR_MAP, lambda x: {k: json_array(v) for k, v in x.virtual_event_attrs().items()}),
        _hash(keys.EVENT_ATTR_ALIAS_MAP, lambda x: dict(x.event_attr().alias)),
        _set(keys.VIRTUAL_EVENT_APPIDS_SET, lambda x: x.virtual_event_app_ids()),
        _set(keys.VIRTUAL_PROP_APP_IDS_SET, lambda x: set(x.virtual_prop_app_ids())),
        _set(keys.EVENT_VIRTUAL_ATTR_IDS_SET, lambda x: set(x.event_attr().virtual_attr_ids)),
        _hash(keys.VIRTUAL_EVENT_PROP_MAP, lambda x: _record_lists(x.event_attr().virtual_event_props)),
        _hash(keys.VIRTUAL_USER_PROP_MAP, lambda x: _record_lists(x.user_prop_meta().virtual_user_props)),
        # Advertising
        _hash(keys.OPEN_ADVERTISING_FUNCTION_APP_MAP, lambda x: _str_map(x.open_advertising_apps()), ADVERTISING),
        _hash(keys.LID_AND_CHANNEL_EVENT_MAP, lambda x: x.link_channel_events(), ADVERTISING),
        _hash(keys.APP_ID_S_MAP, lambda x: _str_map(x.link_event_ids()), ADVERTISING),
        _set(keys.AD_FREQUENCY_SET, lambda x: x.ads_frequency(), ADVERTISING),
        _hash(
            keys.ADS_LINK_EVENT_MAP,
            lambda x: {k: record.to_json() for k, record in x.ads_link_events().items()},
            ADVERTISING,
        ),
        # DW module
        _hash(keys.EVENT_ATTR_COLUMN_MAP, lambda x: dict(x.event_attr().column)),
        _hash(keys.BASE_CURRENT_MAP, lambda x: x.current_kudu_tables()),
        _hash(keys.OPEN_CDP_APPID_MAP, lambda x: x.open_cdp_apps()),
        _hash(keys.YEAR_WEEK, lambda x: x.year_weeks()),
        _hash(keys.CID_BY_AID_MAP, lambda x: dict(x.company_app().cid_by_aid)),
        _set(keys.BUSINESS_MAP, lambda x: x.business_identifiers()),
    )


UNITS: tuple[SyncUnit, ...] = build_catalog()


def enabled_units(settings: CacheSyncSettings, units: Iterable[SyncUnit] = UNITS) -> list[SyncUnit]:
    """Units to dispatch under *settings*, in catalog order."""
    groups = settings.enabled_groups()
    return [unit for unit in units if unit.enabled(groups)]


def get_unit(name: str, units: Iterable[SyncUnit] = UNITS) -> SyncUnit:
    for unit in units:
        if unit.name == name:
            return unit
    raise KeyError(f"Unknown unit: {name!r}")


__all__ = [
    "ADVERTISING",
    "Dataset",
    "SyncUnit",
    "UNITS",
    "build_catalog",
    "enabled_units",
    "get_unit",
]
