"""Tests for cachesync.core.factory -- client construction from settings."""

from unittest.mock import MagicMock

import pytest

from cachesync.core import factory


class TestCreateDatabaseEngine:
    def test_sqlite_shares_connections_across_threads(self, make_settings, tmp_path):
        engine = factory.create_database_engine(make_settings(database_url=f"sqlite:///{tmp_path / 'x.db'}"))
        try:
            assert engine.dialect.name == "sqlite"
        finally:
            engine.dispose()

    def test_server_pool_sized_to_workers(self, make_settings, monkeypatch):
        create_engine = MagicMock()
        monkeypatch.setattr(factory, "create_engine", create_engine)

        factory.create_database_engine(
            make_settings(database_url="mysql+mysqlconnector://u@db/meta", database_pool_size=2, max_workers=8)
        )

        kwargs = create_engine.call_args.kwargs
        assert create_engine.call_args.args == ("mysql+mysqlconnector://u@db/meta",)
        assert kwargs["pool_size"] == 8
        assert kwargs["pool_pre_ping"] is True


class TestCreateRedisClient:
    def test_standalone(self, make_settings, monkeypatch):
        pool_cls = MagicMock()
        redis_cls = MagicMock()
        monkeypatch.setattr(factory.redis, "ConnectionPool", pool_cls)
        monkeypatch.setattr(factory.redis, "Redis", redis_cls)

        client = factory.create_redis_client(make_settings(redis_host="kv", redis_port=6380, redis_timeout_ms=1500))

        assert client is redis_cls.return_value
        pool_kwargs = pool_cls.call_args.kwargs
        assert pool_kwargs["host"] == "kv"
        assert pool_kwargs["port"] == 6380
        assert pool_kwargs["socket_timeout"] == pytest.approx(1.5)
        assert pool_kwargs["decode_responses"] is True
        redis_cls.assert_called_once_with(connection_pool=pool_cls.return_value)

    def test_cluster(self, make_settings, monkeypatch):
        cluster_cls = MagicMock()
        monkeypatch.setattr(factory, "RedisCluster", cluster_cls)

        client = factory.create_redis_client(make_settings(redis_cluster=True, redis_password="s3cret"))

        assert client is cluster_cls.return_value
        kwargs = cluster_cls.call_args.kwargs
        assert kwargs["password"] == "s3cret"
        assert kwargs["decode_responses"] is True
