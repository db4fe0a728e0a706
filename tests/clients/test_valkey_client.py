"""Tests for ValkeyClient - JSON documents with TTL over redis-py."""

import json
from unittest.mock import patch

import pytest

from clients.valkey_client import ValkeyClient


@pytest.fixture
def redis_mock():
    """redis.from_url replaced so no server is needed."""
    with patch("clients.valkey_client.redis.from_url") as from_url:
        yield from_url.return_value


@pytest.fixture
def valkey(redis_mock):
    return ValkeyClient("redis://localhost:6379/0")


class TestValkeyClientInit:
    """Connection initialization."""

    def test_pings_on_connect(self, redis_mock):
        """Connectivity is verified immediately (fail-fast)."""
        ValkeyClient("redis://localhost:6379/0")
        redis_mock.ping.assert_called_once()

    def test_connection_failure_propagates(self, redis_mock):
        redis_mock.ping.side_effect = ConnectionError("refused")

        with pytest.raises(ConnectionError):
            ValkeyClient("redis://localhost:6379/0")

    def test_ping_returns_true(self, valkey):
        assert valkey.ping() is True


class TestJsonOperations:

    def test_set_json_uses_setex_with_namespace(self, valkey, redis_mock):
        valkey.set_json("session:current", {"a": 1}, expire_seconds=300)

        redis_mock.setex.assert_called_once_with("identity:session:current", 300, json.dumps({"a": 1}))

    def test_set_json_requires_positive_ttl(self, valkey):
        with pytest.raises(ValueError, match="expire_seconds"):
            valkey.set_json("k", {}, expire_seconds=0)

    def test_get_json_parses(self, valkey, redis_mock):
        redis_mock.get.return_value = '{"a": 1}'

        assert valkey.get_json("k") == {"a": 1}
        redis_mock.get.assert_called_once_with("identity:k")

    def test_get_json_missing_returns_none(self, valkey, redis_mock):
        redis_mock.get.return_value = None

        assert valkey.get_json("k") is None

    def test_get_json_invalid_raises_value_error(self, valkey, redis_mock):
        redis_mock.get.return_value = "{not json"

        with pytest.raises(ValueError, match="Invalid JSON"):
            valkey.get_json("k")

    def test_empty_namespace_uses_bare_keys(self, redis_mock):
        redis_mock.delete.return_value = 1
        client = ValkeyClient("redis://localhost:6379/0", namespace="")

        assert client.delete("k") is True
        redis_mock.delete.assert_called_once_with("k")


class TestDelete:

    def test_returns_true_when_existed(self, valkey, redis_mock):
        redis_mock.delete.return_value = 1
        assert valkey.delete("k") is True

    def test_returns_false_when_missing(self, valkey, redis_mock):
        redis_mock.delete.return_value = 0
        assert valkey.delete("k") is False


class TestClose:

    def test_closes_connection(self, valkey, redis_mock):
        valkey.close()
        redis_mock.close.assert_called_once()
