"""Tests for cachesync.sync.orchestrator -- full cycles against SQLite and a fake store."""

import os
import subprocess
import sys
import textwrap
import threading
import time
from pathlib import Path

import pytest

from cachesync.core.errors import CycleDeadlineExceeded, OrchestrationError, SourceError
from cachesync.source import queries
from cachesync.store.adapter import DatasetShape
from cachesync.sync.catalog import SyncUnit
from cachesync.sync.orchestrator import Orchestrator
from cachesync.sync.results import CycleStatus
from tests._support.source_db import execute, insert


def _unit(name, producer, shape=DatasetShape.HASH):
    return SyncUnit(name, shape, producer)


def _failing(_extraction):
    raise SourceError("source query failed: table missing")


def _published(fake_redis) -> dict:
    return {key: value for key, value in fake_redis.data.items() if not key.startswith("sync:")}


@pytest.fixture
def seeded(source_engine):
    insert(
        source_engine,
        "company_app",
        {"id": 1, "app_key": "k1", "company_id": 10},
        {"id": 2, "app_key": "k2", "company_id": 10},
    )
    insert(
        source_engine,
        "event",
        {"id": 100, "app_id": 1, "owner": "zg", "event_name": "Login", "is_stop": 0},
        {"id": 101, "app_id": 2, "owner": "zg", "event_name": "Pay", "is_stop": 1},
    )
    insert(
        source_engine,
        "event_attr",
        {"event_id": 100, "attr_id": 5, "attr_name": "os", "owner": "zg", "column_name": "c5"},
    )
    insert(
        source_engine,
        "user_prop_meta",
        {"id": 7, "app_id": 1, "owner": "zg", "name": "vip", "attr_type": 1, "sql_json": "{}"},
    )
    insert(source_engine, "advertising_app", {"app_key": "k1"})
    insert(
        source_engine,
        "ads_link_event",
        {"link_id": 3, "event_id": 100, "event_ids": None, "channel_event": "buy",
         "match_json": None, "frequency": 1, "windows_time": None},
    )
    insert(source_engine, "etl_yearkweek", {"day": 20240101, "year_week": 202401})
    return source_engine


class TestEndToEnd:
    def test_publishes_catalog(self, settings, extraction, store, fake_redis, seeded):
        summary = Orchestrator(settings, extraction, store).run_cycle()

        assert summary.status is CycleStatus.SUCCESS
        assert summary.total == 36
        assert fake_redis.hgetall("appKeyAppIdMap") == {"k1": "1", "k2": "2"}
        assert fake_redis.hgetall("appIdEventIdMap") == {"1_zg_Login": "100", "2_zg_Pay": "101"}
        assert fake_redis.smembers("blackEventIdSet") == {"101"}
        assert fake_redis.hgetall("eventAttrColumnMap") == {"100_5": "c5"}
        assert fake_redis.hgetall("openAdvertisingFunctionAppMap") == {"k1": "1"}
        assert fake_redis.hgetall("yearweek") == {"20240101": "202401"}
        assert fake_redis.smembers("virtualPropAppIdsSet") == {"1"}
        assert fake_redis.keys("*:temp:*") == []

    def test_empty_datasets_leave_no_key(self, settings, extraction, store, fake_redis, seeded):
        Orchestrator(settings, extraction, store).run_cycle()

        assert not fake_redis.exists("businessMap")
        assert not fake_redis.exists("virtualEventMap")

    def test_deleted_app_disappears_next_cycle(self, settings, extraction, store, fake_redis, seeded):
        orchestrator = Orchestrator(settings, extraction, store)
        orchestrator.run_cycle()
        assert fake_redis.hgetall("appKeyAppIdMap") == {"k1": "1", "k2": "2"}

        execute(seeded, "UPDATE company_app SET is_delete = 1 WHERE id = 1")
        orchestrator.run_cycle()

        assert fake_redis.hgetall("appKeyAppIdMap") == {"k2": "2"}
        assert not fake_redis.exists("openAdvertisingFunctionAppMap")

    def test_repeated_cycles_are_byte_identical(self, settings, extraction, store, fake_redis, seeded):
        orchestrator = Orchestrator(settings, extraction, store)

        orchestrator.run_cycle()
        first = _published(fake_redis)
        orchestrator.run_cycle()

        assert _published(fake_redis) == first

    def test_advertising_disabled(self, make_settings, extraction, store, fake_redis, seeded):
        summary = Orchestrator(make_settings(open_advertising=False), extraction, store).run_cycle()

        assert summary.total == 31
        assert not fake_redis.exists("openAdvertisingFunctionAppMap")
        assert not fake_redis.exists("adsLinkEventMap")
        assert fake_redis.hgetall("appKeyAppIdMap") == {"k1": "1", "k2": "2"}


class TestMarkers:
    def test_success_marker(self, settings, extraction, store, fake_redis, seeded):
        Orchestrator(settings, extraction, store).run_cycle()

        assert fake_redis.get("sync:status") == "SUCCESS"
        assert fake_redis.get("sync:timestamp")
        assert int(fake_redis.get("sync:version")) > 0

    def test_running_marker_written_first(self, settings, extraction, store, fake_redis):
        units = [_unit("a", lambda x: {"f": "v"})]
        Orchestrator(settings, extraction, store, units).run_cycle()

        statuses = [args[1] for command, args in fake_redis.calls if command == "set" and args[0] == "sync:status"]
        assert statuses == ["RUNNING", "SUCCESS"]

    def test_partial_failure_marker(self, settings, extraction, store, fake_redis):
        units = [_unit("good", lambda x: {"f": "v"}), _unit("bad", _failing)]
        Orchestrator(settings, extraction, store, units).run_cycle()

        assert fake_redis.get("sync:status") == "PARTIAL_FAILURE"

    def test_marker_write_failure_tolerated(self, settings, extraction, store, fake_redis):
        fake_redis.install_fault("set")
        units = [_unit("good", lambda x: {"f": "v"})]

        summary = Orchestrator(settings, extraction, store, units).run_cycle()

        assert summary.status is CycleStatus.SUCCESS
        assert fake_redis.hgetall("good") == {"f": "v"}


class TestFailureIsolation:
    def test_failing_unit_does_not_stop_siblings(self, settings, extraction, store, fake_redis):
        units = [
            _unit("first", lambda x: {"a": "1"}),
            _unit("bad", _failing),
            _unit("last", lambda x: {"b"}, DatasetShape.SET),
        ]

        summary = Orchestrator(settings, extraction, store, units).run_cycle()

        assert summary.status is CycleStatus.PARTIAL_FAILURE
        assert [r.name for r in summary.results] == ["first", "bad", "last"]
        assert [r.success for r in summary.results] == [True, False, True]
        assert summary.failed_units[0].error_message == "source query failed: table missing"
        assert fake_redis.hgetall("first") == {"a": "1"}
        assert fake_redis.smembers("last") == {"b"}

    def test_missing_table_fails_only_its_unit(self, settings, extraction, store, fake_redis, seeded):
        execute(seeded, "ALTER TABLE ads_frequency_first RENAME TO ads_frequency_moved")

        summary = Orchestrator(settings, extraction, store).run_cycle()

        assert [r.name for r in summary.failed_units] == ["adFrequencySet"]
        assert summary.successful == 35
        assert fake_redis.hgetall("appKeyAppIdMap") == {"k1": "1", "k2": "2"}

    def test_publish_failure_keeps_previous_value(self, settings, extraction, store, fake_redis):
        units = [_unit("cache", lambda x: {"v": "2"})]
        fake_redis.hset("cache", "v", "1")
        fake_redis.install_fault("rename")

        summary = Orchestrator(settings, extraction, store, units).run_cycle()

        assert summary.failed == 1
        assert fake_redis.hgetall("cache") == {"v": "1"}
        assert fake_redis.keys("*:temp:*") == []

    def test_unexpected_exception_is_recorded(self, settings, extraction, store):
        def broken(_):
            raise KeyError("missing")

        summary = Orchestrator(settings, extraction, store, [_unit("broken", broken)]).run_cycle()

        assert summary.results[0].success is False
        assert "missing" in summary.results[0].error_message


class TestConcurrency:
    def test_units_run_in_parallel(self, make_settings, extraction, store):
        barrier = threading.Barrier(3)

        def rendezvous(_):
            barrier.wait(5)
            return {"ok": "1"}

        units = [_unit(f"u{i}", rendezvous) for i in range(3)]
        summary = Orchestrator(make_settings(max_workers=3), extraction, store, units).run_cycle()

        assert summary.successful == 3

    def test_shared_view_scanned_once(self, settings, extraction, store, seeded):
        scans = []
        original = extraction.reader.rows

        def counting_rows(sql, params=None):
            scans.append(sql)
            return original(sql, params)

        extraction.reader.rows = counting_rows
        Orchestrator(settings, extraction, store).run_cycle()

        assert scans.count(queries.EVENT_ATTR) == 1
        assert scans.count(queries.EVENT) == 1
        assert scans.count(queries.COMPANY_APP) == 1


class TestDeadline:
    @pytest.fixture
    def release(self):
        gate = threading.Event()
        yield gate
        gate.set()

    def test_deadline_exceeded(self, make_settings, extraction, store, fake_redis, release):
        def slow(_):
            release.wait(10)
            return {"late": "1"}

        units = [_unit("fast", lambda x: {"a": "1"}), _unit("slow", slow)]
        orchestrator = Orchestrator(make_settings(max_workers=2, timeout_seconds=1), extraction, store, units)

        with pytest.raises(CycleDeadlineExceeded) as exc_info:
            orchestrator.run_cycle()

        error = exc_info.value
        assert error.pending == ["slow"]
        assert [r.name for r in error.summary.results] == ["fast", "slow"]
        assert error.summary.results[0].success is True
        assert error.summary.results[1].error_message == "abandoned: cycle deadline exceeded"
        assert fake_redis.get("sync:status") == "RUNNING"

    def test_queued_units_are_cancelled(self, make_settings, extraction, store, fake_redis, release):
        def slow(_):
            release.wait(10)
            return {"late": "1"}

        units = [_unit("slow", slow), _unit("queued", lambda x: {"a": "1"})]
        orchestrator = Orchestrator(make_settings(max_workers=1, timeout_seconds=1), extraction, store, units)

        with pytest.raises(CycleDeadlineExceeded) as exc_info:
            orchestrator.run_cycle()

        messages = {r.name: r.error_message for r in exc_info.value.summary.results}
        assert messages == {
            "slow": "abandoned: cycle deadline exceeded",
            "queued": "cancelled: cycle deadline exceeded",
        }
        release.set()
        assert not fake_redis.exists("queued")

    def test_stuck_unit_does_not_block_process_exit(self):
        root = Path(__file__).resolve().parents[2]
        script = textwrap.dedent(
            """
            import sys
            import time

            from sqlalchemy import create_engine

            from cachesync.core.errors import CycleDeadlineExceeded
            from cachesync.core.settings import CacheSyncSettings
            from cachesync.source.extraction import ExtractionLayer
            from cachesync.source.reader import SourceReader
            from cachesync.store.adapter import DatasetShape, KeyValueStore
            from cachesync.sync.catalog import SyncUnit
            from cachesync.sync.orchestrator import Orchestrator
            from tests._support.fake_redis import FakeRedis

            def stuck(_):
                time.sleep(60)
                return {}

            settings = CacheSyncSettings(_env_file=None, max_workers=1, timeout_seconds=1)
            extraction = ExtractionLayer(SourceReader(create_engine("sqlite://")))
            store = KeyValueStore(FakeRedis(), cluster=False)
            units = [SyncUnit("stuck", DatasetShape.HASH, stuck)]
            try:
                Orchestrator(settings, extraction, store, units).run_cycle()
            except CycleDeadlineExceeded:
                sys.exit(1)
            """
        )
        env = dict(os.environ, PYTHONPATH=os.pathsep.join([str(root / "src"), str(root)]))

        started = time.monotonic()
        completed = subprocess.run(
            [sys.executable, "-c", script],
            cwd=root,
            env=env,
            capture_output=True,
            text=True,
            timeout=30,
        )

        assert completed.returncode == 1, completed.stderr
        assert time.monotonic() - started < 15


class TestDispatchFailure:
    def test_thread_start_failure(self, settings, extraction, store, fake_redis, monkeypatch):
        def refuse(self):
            raise RuntimeError("can't start new thread")

        monkeypatch.setattr(threading.Thread, "start", refuse)
        orchestrator = Orchestrator(settings, extraction, store, [_unit("a", lambda x: {"a": "1"})])

        with pytest.raises(OrchestrationError, match="Unit dispatch failed: can't start new thread") as exc_info:
            orchestrator.run_cycle()

        assert not isinstance(exc_info.value, CycleDeadlineExceeded)
        assert fake_redis.get("sync:status") == "RUNNING"
        assert not fake_redis.exists("a")
