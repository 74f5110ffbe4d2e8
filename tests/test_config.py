"""Tests for configuration dataclasses and URL handling."""

import dataclasses

import pytest

from rxgateway.config import (
    GatewayConfig,
    ReconnectPolicy,
    build_gateway_url,
    validate_shard,
)
from rxgateway.mechanism import OtherError


def test_defaults():
    config = GatewayConfig()
    assert config.large_threshold == 250
    assert config.compress is True
    assert config.heartbeat_tick == 0.1
    assert config.reconnect.same_endpoint_attempts == 2
    assert config.api_base == "https://discord.com/api/v6"


def test_config_is_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        GatewayConfig().compress = False


@pytest.mark.parametrize(
    "kwargs",
    [{"same_endpoint_attempts": -1}, {"delay": -0.5}, {"resume_delay": -1}, {"worker_join_timeout": 0}],
)
def test_policy_validation(kwargs):
    with pytest.raises(ValueError):
        ReconnectPolicy(**kwargs)


@pytest.mark.parametrize("kwargs", [{"heartbeat_tick": 0}, {"large_threshold": -1}])
def test_config_validation(kwargs):
    with pytest.raises(ValueError):
        GatewayConfig(**kwargs)


class TestShard:
    def test_none_passes_through(self):
        assert validate_shard(None) is None

    def test_valid(self):
        assert validate_shard((0, 1)) == (0, 1)
        assert validate_shard([3, 4]) == (3, 4)

    @pytest.mark.parametrize("shard", [(1, 1), (-1, 2), (0, 0)])
    def test_invalid(self, shard):
        with pytest.raises(ValueError):
            validate_shard(shard)


class TestGatewayUrl:
    def test_appends_version(self):
        assert build_gateway_url("wss://gateway.example") == "wss://gateway.example?v=6"

    def test_keeps_path_and_query(self):
        assert (
            build_gateway_url("wss://gateway.example/ws?encoding=json")
            == "wss://gateway.example/ws?encoding=json&v=6"
        )

    @pytest.mark.parametrize("url", ["https://gateway.example", "gateway.example", "wss://"])
    def test_rejects_non_websocket_urls(self, url):
        with pytest.raises(OtherError, match="Invalid gateway URL"):
            build_gateway_url(url)
