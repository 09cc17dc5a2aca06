"""Tests for cachesync.store.keys -- physical key layout."""

from redis.crc import key_slot

from cachesync.store import keys


class TestLogicalKey:
    def test_standalone_uses_plain_name(self):
        assert keys.logical_key("appKeyAppIdMap", cluster=False) == "appKeyAppIdMap"

    def test_cluster_wraps_in_hash_tag(self):
        assert keys.logical_key("appKeyAppIdMap", cluster=True) == "{appKeyAppIdMap}"


class TestScratchKey:
    def test_format(self):
        scratch = keys.scratch_key("blackEventIdSet")
        prefix, suffix = scratch.split(keys.SCRATCH_INFIX)
        assert prefix == "{blackEventIdSet}"
        assert suffix.isdigit()

    def test_same_slot_as_cluster_key(self):
        logical = keys.logical_key("appKeyAppIdMap", cluster=True)
        scratch = keys.scratch_key("appKeyAppIdMap")
        assert key_slot(scratch.encode()) == key_slot(logical.encode())


def test_wire_names_kept_verbatim():
    assert keys.EVENT_ATTR_PLATFORM == "eventAttrdPlatform"
    assert keys.YEAR_WEEK == "yearweek"
    assert keys.APP_ID_S_MAP == "appIdSMap"
