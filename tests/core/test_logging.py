"""Tests for cachesync.core.logging module."""

import json
import logging

import pytest
import structlog

from cachesync.core.logging import LogContext, bind_context, configure_logging, get_logger, unbind_context


@pytest.fixture
def json_logging(caplog):
    caplog.set_level(logging.DEBUG)
    configure_logging(level="DEBUG", json_format=True, service="cache-sync-test")
    yield caplog
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def _events(caplog) -> list[dict]:
    return [json.loads(r.getMessage()) for r in caplog.records if r.getMessage().startswith("{")]


class TestJsonLogging:
    def test_event_fields(self, json_logging):
        get_logger("cachesync.test").info("view_loaded", view="event", events=3)

        event = _events(json_logging)[-1]
        assert event["event"] == "view_loaded"
        assert event["view"] == "event"
        assert event["events"] == 3
        assert event["service.name"] == "cache-sync-test"
        assert event["log.level"] == "info"
        assert event["logger"] == "cachesync.test"
        assert "@timestamp" in event

    def test_level_filtering(self, caplog):
        caplog.set_level(logging.DEBUG)
        configure_logging(level="WARNING", json_format=True)
        try:
            get_logger("cachesync.test").info("hidden")
            get_logger("cachesync.test").warning("shown")
        finally:
            structlog.reset_defaults()
        names = [e["event"] for e in _events(caplog)]
        assert "shown" in names
        assert "hidden" not in names


class TestContext:
    def test_log_context_binds_and_unbinds(self, json_logging):
        logger = get_logger("cachesync.test")
        with LogContext(cycle_id="c-1"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = _events(json_logging)[-2:]
        assert inside["cycle_id"] == "c-1"
        assert "cycle_id" not in outside

    def test_bind_and_unbind(self, json_logging):
        bind_context(unit="yearweek")
        get_logger("cachesync.test").info("bound")
        unbind_context("unit")
        get_logger("cachesync.test").info("unbound")

        bound, unbound = _events(json_logging)[-2:]
        assert bound["unit"] == "yearweek"
        assert "unit" not in unbound
