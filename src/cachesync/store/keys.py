"""Published cache layout: logical cache names and physical key rules.

Downstream services read these names, so they are part of the wire
contract (spelling included: ``eventAttrdPlatform`` is what readers expect).

In cluster mode every logical key is wrapped in a hash tag, ``{name}``, so
the key and its scratch copy ``{name}:temp:<ns>`` hash to the same slot and
can be RENAMEd atomically.
"""

from __future__ import annotations

import time

# ── Core lookups ────────────────────────────────────────────────────────
APP_KEY_APP_ID_MAP = "appKeyAppIdMap"
APP_ID_SDK_HAS_DATA_MAP = "appIdSdkHasDataMap"
APP_ID_PROP_ID_MAP = "appIdPropIdMap"
APP_ID_PROP_ID_ORIGINAL_MAP = "appIdPropIdOriginalMap"
APP_ID_EVENT_ID_MAP = "appIdEventIdMap"
APP_ID_EVENT_ATTR_ID_MAP = "appIdEventAttrIdMap"
APP_ID_DEVICE_PROP_ID_MAP = "appIdDevicePropIdMap"

# ── Blacklists and quotas ───────────────────────────────────────────────
BLACK_USER_PROP_SET = "blackUserPropSet"
BLACK_EVENT_ID_SET = "blackEventIdSet"
BLACK_EVENT_ATTR_ID_SET = "blackEventAttrIdSet"
APP_ID_CREATE_EVENT_FORBID_SET = "appIdCreateEventForbidSet"
APP_ID_UPLOAD_DATA_SET = "appIdUploadDataSet"
APP_ID_NONE_AUTO_CREATE_SET = "appIdNoneAutoCreateSet"
EVENT_ID_CREATE_ATTR_FORBIDDEN_SET = "eventIdCreateAttrForbiddenSet"

# ── Platforms ───────────────────────────────────────────────────────────
EVENT_ID_PLATFORM = "eventIdPlatform"
EVENT_ATTR_PLATFORM = "eventAttrdPlatform"
DEVICE_PROP_PLATFORM = "devicePropPlatform"

# ── Virtual events and properties ───────────────────────────────────────
VIRTUAL_EVENT_MAP = "virtualEventMap"
VIRTUAL_EVENT_ATTR_MAP = "virtualEventAttrMap"
EVENT_ATTR_ALIAS_MAP = "eventAttrAliasMap"
VIRTUAL_EVENT_APPIDS_SET = "virtualEventAppidsSet"
VIRTUAL_PROP_APP_IDS_SET = "virtualPropAppIdsSet"
EVENT_VIRTUAL_ATTR_IDS_SET = "eventVirtualAttrIdsSet"
VIRTUAL_EVENT_PROP_MAP = "virtualEventPropMap"
VIRTUAL_USER_PROP_MAP = "virtualUserPropMap"

# ── Advertising ─────────────────────────────────────────────────────────
OPEN_ADVERTISING_FUNCTION_APP_MAP = "openAdvertisingFunctionAppMap"
LID_AND_CHANNEL_EVENT_MAP = "lidAndChannelEventMap"
APP_ID_S_MAP = "appIdSMap"
AD_FREQUENCY_SET = "adFrequencySet"
ADS_LINK_EVENT_MAP = "adsLinkEventMap"

# ── DW module ───────────────────────────────────────────────────────────
EVENT_ATTR_COLUMN_MAP = "eventAttrColumnMap"
BASE_CURRENT_MAP = "baseCurrentMap"
OPEN_CDP_APPID_MAP = "openCdpAppidMap"
YEAR_WEEK = "yearweek"
CID_BY_AID_MAP = "cidByAidMap"
BUSINESS_MAP = "businessMap"

# ── Cycle metadata ──────────────────────────────────────────────────────
SYNC_STATUS = "sync:status"
SYNC_TIMESTAMP = "sync:timestamp"
SYNC_VERSION = "sync:version"

SCRATCH_INFIX = ":temp:"


def logical_key(name: str, cluster: bool) -> str:
    """Physical key holding the published dataset of *name*."""
    return f"{{{name}}}" if cluster else name


def scratch_key(name: str) -> str:
    """A fresh scratch key for cache *name*.

    Always hash-tagged, so in cluster mode it shares the slot of
    ``logical_key(name, True)``.

    Suffixed with the nanosecond wall clock; a unit never publishes twice
    concurrently, so the suffix only has to differ between cycles.
    """
    return f"{{{name}}}{SCRATCH_INFIX}{time.time_ns()}"
