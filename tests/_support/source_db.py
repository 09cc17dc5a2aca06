"""
SQLite rendition of the relational source schema, plus row helpers.

Only the columns the extraction queries read are declared. Status columns
default to the "live" value so tests only spell out what they vary.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine

SCHEMA = [
    """CREATE TABLE company_app (
        id INTEGER PRIMARY KEY, app_key TEXT, company_id INTEGER,
        is_delete INTEGER DEFAULT 0, stop INTEGER DEFAULT 0, auto_event INTEGER DEFAULT 1,
        event_sum INTEGER DEFAULT 1000, attr_sum INTEGER DEFAULT 1000)""",
    "CREATE TABLE tmp_transfer (id INTEGER, status INTEGER)",
    """CREATE TABLE user_prop_meta (
        id INTEGER, app_id INTEGER, owner TEXT, name TEXT, is_delete INTEGER DEFAULT 0,
        attr_type INTEGER DEFAULT 0, sql_json TEXT, table_fields TEXT)""",
    """CREATE TABLE event (
        id INTEGER PRIMARY KEY, app_id INTEGER, owner TEXT, event_name TEXT,
        is_delete INTEGER DEFAULT 0, is_stop INTEGER DEFAULT 0)""",
    """CREATE TABLE event_attr (
        event_id INTEGER, attr_id INTEGER, attr_name TEXT, owner TEXT,
        is_delete INTEGER DEFAULT 0, is_stop INTEGER DEFAULT 0, attr_type INTEGER DEFAULT 0,
        alias_name TEXT, column_name TEXT, sql_json TEXT)""",
    "CREATE TABLE app (main_id INTEGER, sdk_platform INTEGER, has_data INTEGER)",
    "CREATE TABLE device_prop (app_id INTEGER, owner TEXT, name TEXT, id INTEGER)",
    "CREATE TABLE app_data (app_id INTEGER)",
    "CREATE TABLE event_platform (event_id INTEGER, platform INTEGER)",
    "CREATE TABLE event_attr_platform (event_attr_id INTEGER, platform INTEGER)",
    "CREATE TABLE device_prop_platform (prop_id INTEGER, platform INTEGER)",
    "CREATE TABLE advertising_app (app_key TEXT, is_delete INTEGER DEFAULT 0, stop INTEGER DEFAULT 0)",
    """CREATE TABLE ads_link_event (
        link_id INTEGER, event_id INTEGER, event_ids TEXT, channel_event TEXT,
        match_json TEXT, frequency INTEGER, windows_time INTEGER, is_delete INTEGER DEFAULT 0)""",
    "CREATE TABLE ads_frequency_first (event_id INTEGER, link_id INTEGER, zg_id TEXT)",
    """CREATE TABLE virtual_event (
        event_name TEXT, alias_name TEXT, app_id INTEGER, event_json TEXT,
        is_delete INTEGER DEFAULT 0, event_status INTEGER DEFAULT 0)""",
    "CREATE TABLE kudu_exchange (base_name TEXT, current_name TEXT)",
    "CREATE TABLE app_custom_config (app_id INTEGER, app_config TEXT, app_config_type TEXT)",
    "CREATE TABLE etl_yearkweek (day INTEGER, year_week INTEGER)",
    "CREATE TABLE business (company_id INTEGER, identifier TEXT, del INTEGER DEFAULT 0, state INTEGER DEFAULT 1)",
]


def create_schema(engine: Engine) -> None:
    with engine.begin() as conn:
        for ddl in SCHEMA:
            conn.execute(text(ddl))


def insert(engine: Engine, table: str, *rows: dict[str, Any]) -> None:
    """Insert *rows* (dicts of column → value) into *table*."""
    if not rows:
        return
    columns = list(rows[0])
    if any(set(row) != set(columns) for row in rows):
        raise ValueError(f"rows for {table} must all set the same columns")
    sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(':' + c for c in columns)})"
    with engine.begin() as conn:
        conn.execute(text(sql), [dict(row) for row in rows])


def execute(engine: Engine, sql: str, **params: Any) -> None:
    with engine.begin() as conn:
        conn.execute(text(sql), params)
