"""Convenience exports for the :mod:`rxgateway` package."""

from .client import GatewayClient  # noqa: F401
from .codec import (  # noqa: F401
    Dispatch,
    GatewayEvent,
    Heartbeat,
    HeartbeatAck,
    Hello,
    InvalidateSession,
    OpCode,
    Reconnect,
    decode_frame,
)
from .config import (  # noqa: F401
    DEFAULT_API_BASE,
    GATEWAY_VERSION,
    GatewayConfig,
    ReconnectPolicy,
    build_gateway_url,
)
from .heartbeat import HeartbeatWorker  # noqa: F401
from .mechanism import (  # noqa: F401
    ClientClosedError,
    GatewayError,
    OtherError,
    ProtocolError,
    TransportError,
)
from .model import (  # noqa: F401
    DomainEvent,
    Event,
    Game,
    GameType,
    Intents,
    OnlineStatus,
    ReadyEvent,
    Reconnected,
    ResumedEvent,
)
from .observable import GatewayState, event_stream  # noqa: F401
from .reconnect import Reconnector  # noqa: F401
from .rest import GatewayLocator, HttpGatewayLocator  # noqa: F401
from .session import SessionState  # noqa: F401
from .transport import Connector, ReadHalf, WebSocketConnector, WriteHalf  # noqa: F401

__all__ = [
    "GatewayClient",
    "GatewayConfig",
    "ReconnectPolicy",
    "GATEWAY_VERSION",
    "DEFAULT_API_BASE",
    "build_gateway_url",
    "SessionState",

    # errors
    "GatewayError",
    "TransportError",
    "ProtocolError",
    "OtherError",
    "ClientClosedError",

    # domain values
    "DomainEvent",
    "ReadyEvent",
    "ResumedEvent",
    "Reconnected",
    "Event",
    "Game",
    "GameType",
    "OnlineStatus",
    "Intents",

    # wire
    "OpCode",
    "GatewayEvent",
    "Hello",
    "Dispatch",
    "Heartbeat",
    "HeartbeatAck",
    "Reconnect",
    "InvalidateSession",
    "decode_frame",

    # transport
    "Connector",
    "ReadHalf",
    "WriteHalf",
    "WebSocketConnector",
    "GatewayLocator",
    "HttpGatewayLocator",

    # internals exposed for custom setups
    "HeartbeatWorker",
    "Reconnector",

    # reactive
    "GatewayState",
    "event_stream",
]
