"""SQL read by the extraction layer.

One constant per physical scan. The consolidated scans (``COMPANY_APP``,
``USER_PROP_META``, ``EVENT``, ``EVENT_ATTR``) select every column any of
their derived lookups needs, so each table is read once per cycle.
"""

# ── Consolidated scans ──────────────────────────────────────────────────

COMPANY_APP = "SELECT id, app_key, company_id, is_delete, stop, auto_event FROM company_app"

TRANSFERRED_APP_IDS = "SELECT id FROM tmp_transfer WHERE status = 2"

USER_PROP_META = (
    "SELECT id, app_id, owner, name, is_delete, attr_type, sql_json, table_fields "
    "FROM user_prop_meta"
)

EVENT = "SELECT id, app_id, owner, event_name, is_delete, is_stop FROM event"

EVENT_ATTR = (
    "SELECT event_id, attr_id, attr_name, owner, is_delete, is_stop, "
    "attr_type, alias_name, column_name, sql_json FROM event_attr"
)

# ── Quota ("forbidden to create") sets ──────────────────────────────────

FORBIDDEN_CREATE_EVENT_APP_IDS = (
    "SELECT a.id FROM company_app a, event b "
    "WHERE a.is_delete = 0 AND b.is_delete = 0 AND b.owner = 'zg' AND b.is_stop = 0 "
    "AND a.id = b.app_id "
    "GROUP BY a.id HAVING COUNT(*) >= MAX(a.event_sum)"
)

FORBIDDEN_CREATE_ATTR_EVENT_IDS = (
    "SELECT b.id FROM company_app a, event b, event_attr c "
    "WHERE a.is_delete = 0 AND b.is_delete = 0 AND b.is_stop = 0 "
    "AND a.id = b.app_id AND b.id = c.event_id AND c.is_stop = 0 "
    "GROUP BY b.id HAVING COUNT(*) >= MAX(a.attr_sum)"
)

# ── Standalone lookups ──────────────────────────────────────────────────

SDK_PLATFORM_HAS_DATA = "SELECT main_id, sdk_platform, has_data FROM app"

DEVICE_PROP = "SELECT app_id, owner, name, id FROM device_prop"

UPLOAD_DATA_APP_IDS = "SELECT app_id FROM app_data"

EVENT_PLATFORM = "SELECT event_id, platform FROM event_platform"

EVENT_ATTR_PLATFORM = "SELECT event_attr_id, platform FROM event_attr_platform"

DEVICE_PROP_PLATFORM = "SELECT prop_id, platform FROM device_prop_platform"

# ── Advertising ─────────────────────────────────────────────────────────

OPEN_ADVERTISING_APPS = (
    "SELECT a.app_key, a.id AS app_id FROM company_app a "
    "JOIN advertising_app b ON a.app_key = b.app_key "
    "WHERE a.is_delete = 0 AND b.is_delete = 0 AND b.stop = 0"
)

ADS_LINK_EVENT = (
    "SELECT link_id, event_id, event_ids, channel_event, match_json, frequency, windows_time "
    "FROM ads_link_event WHERE is_delete = 0"
)

ADS_FREQUENCY = "SELECT event_id, link_id, zg_id FROM ads_frequency_first"

# ── Virtual events ──────────────────────────────────────────────────────

VIRTUAL_EVENT = (
    "SELECT event_name, alias_name, app_id, event_json FROM virtual_event "
    "WHERE is_delete = 0 AND event_status = 0"
)

VIRTUAL_EVENT_APP_IDS = (
    "SELECT app_id FROM virtual_event WHERE is_delete = 0 AND event_status = 0 GROUP BY app_id"
)

# ── DW module ───────────────────────────────────────────────────────────

KUDU_EXCHANGE = "SELECT base_name, current_name FROM kudu_exchange"

OPEN_CDP = (
    "SELECT app_id, app_config FROM app_custom_config "
    "WHERE app_config_type = 'id_mapping' AND app_config = 'true'"
)

YEAR_WEEK = "SELECT day, year_week FROM etl_yearkweek"

BUSINESS = "SELECT company_id, identifier FROM business WHERE del = 0 AND state = 1"
