"""Gateway connection configuration.

Provides the protocol constants, the typed :class:`GatewayConfig` and
:class:`ReconnectPolicy` dataclasses, and :func:`build_gateway_url`.
"""

from dataclasses import dataclass, field
from urllib.parse import urlencode, urlsplit, urlunsplit

from .mechanism import OtherError

GATEWAY_VERSION = 6
DEFAULT_API_BASE = "https://discord.com/api/v6"


@dataclass(frozen=True)
class ReconnectPolicy:
    """Timing and attempt limits used when a session is lost.

    Attributes:
        same_endpoint_attempts: Full handshakes tried against the last known
            endpoint before asking the REST API for a new one.
        delay: Seconds slept before reconnecting and between attempts.
        resume_delay: Seconds slept before opening the resume transport.
        worker_join_timeout: Seconds to wait for an aborted heartbeat worker.
    """

    same_endpoint_attempts: int = 2
    delay: float = 1.0
    resume_delay: float = 1.0
    worker_join_timeout: float = 5.0

    def __post_init__(self):
        if self.same_endpoint_attempts < 0:
            raise ValueError(
                f"same_endpoint_attempts must be >= 0, got {self.same_endpoint_attempts}"
            )
        if self.delay < 0 or self.resume_delay < 0:
            raise ValueError("reconnect delays must be non-negative")
        if self.worker_join_timeout <= 0:
            raise ValueError("worker_join_timeout must be positive")


@dataclass(frozen=True)
class GatewayConfig:
    """Tunables for a :class:`~rxgateway.client.GatewayClient`.

    Attributes:
        large_threshold: Member count above which the server omits offline
            members from guild payloads.
        compress: Ask the server for zlib-compressed payloads.
        heartbeat_tick: Polling granularity of the heartbeat worker, seconds.
        reconnect: Recovery timing, see :class:`ReconnectPolicy`.
        api_base: REST API root used to rediscover the gateway endpoint.
        name: Source name used in log records.
    """

    large_threshold: int = 250
    compress: bool = True
    heartbeat_tick: float = 0.1
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    api_base: str = DEFAULT_API_BASE
    name: str | None = None

    def __post_init__(self):
        if self.heartbeat_tick <= 0:
            raise ValueError(f"heartbeat_tick must be positive, got {self.heartbeat_tick}")
        if self.large_threshold < 0:
            raise ValueError(f"large_threshold must be >= 0, got {self.large_threshold}")


def validate_shard(shard: tuple[int, int] | None) -> tuple[int, int] | None:
    """Check a ``(shard_id, total_shards)`` pair; ``shard_id`` is 0-based."""
    if shard is None:
        return None
    shard_id, total = shard
    if total < 1 or not 0 <= shard_id < total:
        raise ValueError(f"invalid shard {shard!r}: need 0 <= shard_id < total_shards")
    return (shard_id, total)


def build_gateway_url(base: str) -> str:
    """Append the protocol version to a gateway endpoint.

    Raises:
        OtherError: If ``base`` is not a ``ws://`` or ``wss://`` URL.
    """
    parts = urlsplit(base)
    if parts.scheme not in ("ws", "wss") or not parts.netloc:
        raise OtherError("Invalid gateway URL", source="build_gateway_url",
                         exception=ValueError(base))
    query = urlencode({"v": GATEWAY_VERSION})
    if parts.query:
        query = f"{parts.query}&{query}"
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))
