"""Shared test fixtures for rxgateway tests.

The gateway is driven through in-memory transports: a :class:`FakeConnector`
hands out scripted :class:`FakeReader`/:class:`FakeWriter` pairs, so every
test runs without a network.
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from opentelemetry.sdk._logs import LoggerProvider

from rxgateway import GatewayClient, GatewayConfig, ReconnectPolicy, TransportError
from rxgateway.telemetry import OTelLogger


# =============================================================================
# Frame builders
# =============================================================================


def hello(interval_ms: int = 45000) -> dict:
    return {"op": 10, "d": {"heartbeat_interval": interval_ms}}


def dispatch(seq: int, name: str, data=None) -> dict:
    return {"op": 0, "s": seq, "t": name, "d": data if data is not None else {}}


def ready(seq: int = 1, session_id: str = "abc", **extra) -> dict:
    return dispatch(seq, "READY", {"session_id": session_id, "v": 6, **extra})


def resumed(seq: int) -> dict:
    return dispatch(seq, "RESUMED", {})


def invalidate() -> dict:
    return {"op": 9, "d": False}


def closed(code: int | None = None) -> TransportError:
    return TransportError("Connection closed", source="fake", code=code)


# =============================================================================
# Fake transport
# =============================================================================


class FakeReader:
    """Read half fed from a queue; exceptions in the queue are raised."""

    def __init__(self, frames=()):
        self._queue: asyncio.Queue = asyncio.Queue()
        for frame in frames:
            self.feed(frame)

    def feed(self, frame) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._queue.put_nowait(frame)

    async def recv(self):
        item = await self._queue.get()
        if isinstance(item, BaseException):
            raise item
        return item


class FakeWriter:
    """Write half recording every frame; closing it ends the paired reader."""

    def __init__(self, reader: FakeReader | None = None):
        self.sent: list = []
        self.closed = False
        self.fail = False
        self._reader = reader

    async def send_json(self, value) -> None:
        if self.closed or self.fail:
            raise TransportError("Send on closed connection", source="fake")
        json.dumps(value)
        self.sent.append(value)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._reader is not None:
            self._reader.feed(closed(1000))

    def ops(self) -> list[int]:
        return [frame["op"] for frame in self.sent]


class FakeLink:
    def __init__(self, frames):
        self.reader = FakeReader(frames)
        self.writer = FakeWriter(self.reader)


class FakeConnector:
    """Serves scripted links in order.

    Each script entry is either a list of inbound frames (a new link is
    opened) or an exception raised by ``connect``.
    """

    def __init__(self, *script):
        self._script = list(script)
        self.urls: list[str] = []
        self.links: list[FakeLink] = []

    async def connect(self, url: str):
        self.urls.append(url)
        if not self._script:
            raise TransportError(f"No scripted link for {url}", source="fake")
        entry = self._script.pop(0)
        if isinstance(entry, BaseException):
            raise entry
        link = FakeLink(entry)
        self.links.append(link)
        return link.reader, link.writer


class StubLocator:
    def __init__(self, url: str = "wss://rediscovered.example"):
        self.url = url
        self.calls = 0

    async def gateway_url(self, token: str) -> str:
        self.calls += 1
        return self.url


class FixedRandom:
    """Jitter source returning a constant fraction."""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


# =============================================================================
# Helpers
# =============================================================================


ENDPOINT = "wss://gateway.example"
TOKEN = "Bot secret"


async def wait_for(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    """Poll ``predicate`` until it holds, failing the test after ``timeout``."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met in time")
        await asyncio.sleep(interval)


def fast_config(delay: float = 0, resume_delay: float = 0, **overrides) -> GatewayConfig:
    policy = ReconnectPolicy(delay=delay, resume_delay=resume_delay, worker_join_timeout=1.0)
    return GatewayConfig(heartbeat_tick=0.005, reconnect=policy, **overrides)


async def connect_client(connector, locator=None, **kwargs):
    kwargs.setdefault("config", fast_config())
    kwargs.setdefault("logger_provider", LoggerProvider())
    return await GatewayClient.connect(
        ENDPOINT,
        TOKEN,
        connector=connector,
        locator=locator if locator is not None else StubLocator(),
        **kwargs,
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def silent_logger_provider():
    """SDK LoggerProvider with no processors: records go nowhere."""
    return LoggerProvider()


@pytest.fixture
def mock_logger():
    """OTelLogger over a MagicMock, for asserting on emitted records."""
    backend = MagicMock()
    return OTelLogger(backend, source="test"), backend
