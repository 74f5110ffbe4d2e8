"""Tests for the Reconnector retry sequence."""

import asyncio
from unittest.mock import MagicMock

import pytest

from conftest import StubLocator

from rxgateway.config import ReconnectPolicy
from rxgateway.mechanism import ClientClosedError, ProtocolError, TransportError
from rxgateway.reconnect import Reconnector
from rxgateway.telemetry import OTelLogger


class ScriptedHandshake:
    """Fails ``failures`` times, then returns the endpoint it was given."""

    def __init__(self, failures: int):
        self.failures = failures
        self.endpoints: list[str] = []

    async def __call__(self, endpoint: str) -> str:
        self.endpoints.append(endpoint)
        if len(self.endpoints) <= self.failures:
            raise TransportError("refused", source="test")
        return f"link:{endpoint}"


def make_reconnector(locator=None, attempts=2):
    backend = MagicMock()
    logger = OTelLogger(backend, source="test")
    policy = ReconnectPolicy(same_endpoint_attempts=attempts, delay=0, resume_delay=0)
    return Reconnector(policy, locator or StubLocator(), logger), backend


def test_first_attempt_succeeds():
    reconnector, _ = make_reconnector()
    handshake = ScriptedHandshake(failures=0)
    result = asyncio.run(reconnector.reconnect("wss://a", "tok", handshake))
    assert result == ("link:wss://a", "wss://a")
    assert handshake.endpoints == ["wss://a"]


def test_rediscovers_after_same_endpoint_attempts():
    locator = StubLocator("wss://b")
    reconnector, _ = make_reconnector(locator)
    handshake = ScriptedHandshake(failures=2)

    result = asyncio.run(reconnector.reconnect("wss://a", "tok", handshake))

    assert result == ("link:wss://b", "wss://b")
    assert handshake.endpoints == ["wss://a", "wss://a", "wss://b"]
    assert locator.calls == 1


def test_final_error_propagates():
    reconnector, _ = make_reconnector()
    handshake = ScriptedHandshake(failures=3)
    with pytest.raises(TransportError):
        asyncio.run(reconnector.reconnect("wss://a", "tok", handshake))
    assert len(handshake.endpoints) == 3


def test_failed_attempts_are_logged_as_warnings():
    reconnector, backend = make_reconnector()
    asyncio.run(reconnector.reconnect("wss://a", "tok", ScriptedHandshake(failures=2)))
    warnings = [c[0][0] for c in backend.emit.call_args_list if c[0][0].severity_text == "WARN"]
    assert len(warnings) == 2


def test_locator_failure_propagates():
    class BrokenLocator:
        async def gateway_url(self, token):
            raise ProtocolError("Gateway lookup returned no url", source="test")

    reconnector, _ = make_reconnector(BrokenLocator(), attempts=0)
    with pytest.raises(ProtocolError):
        asyncio.run(reconnector.reconnect("wss://a", "tok", ScriptedHandshake(failures=0)))


def test_closed_client_skips_every_attempt():
    locator = StubLocator()
    reconnector, _ = make_reconnector(locator)
    handshake = ScriptedHandshake(failures=0)

    with pytest.raises(ClientClosedError):
        asyncio.run(reconnector.reconnect("wss://a", "tok", handshake, lambda: True))
    assert handshake.endpoints == []
    assert locator.calls == 0


def test_closing_during_attempts_stops_before_locator():
    locator = StubLocator()
    reconnector, _ = make_reconnector(locator)
    handshake = ScriptedHandshake(failures=3)

    with pytest.raises(ClientClosedError):
        asyncio.run(
            reconnector.reconnect(
                "wss://a", "tok", handshake, lambda: len(handshake.endpoints) >= 1
            )
        )
    assert handshake.endpoints == ["wss://a"]
    assert locator.calls == 0


def test_client_closed_handshake_is_not_retried():
    calls = []

    async def handshake(endpoint):
        calls.append(endpoint)
        raise ClientClosedError("Client was shut down", source="test")

    reconnector, backend = make_reconnector()
    with pytest.raises(ClientClosedError):
        asyncio.run(reconnector.reconnect("wss://a", "tok", handshake))
    assert calls == ["wss://a"]
    backend.emit.assert_called_once()
