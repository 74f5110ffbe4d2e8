"""Gateway frame codec.

Inbound frames decode into exactly one :data:`GatewayEvent` variant.
Outbound commands are built as ``{"op": <int>, "d": <payload>}`` dicts and
serialized by the transport. Nothing here holds state.
"""

import json
import sys
import zlib
from collections.abc import Iterable
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from .config import GATEWAY_VERSION, validate_shard
from .mechanism import ProtocolError
from .model import DomainEvent, Game, GameType, Intents, OnlineStatus, ReadyEvent, ResumedEvent

_SOURCE = "codec"


class OpCode(IntEnum):
    DISPATCH = 0
    HEARTBEAT = 1
    IDENTIFY = 2
    PRESENCE_UPDATE = 3
    RESUME = 6
    RECONNECT = 7
    REQUEST_MEMBERS = 8
    INVALIDATE_SESSION = 9
    HELLO = 10
    HEARTBEAT_ACK = 11
    SYNC_SERVERS = 12
    SYNC_CALL = 13


# =============================================================================
# Inbound
# =============================================================================


@dataclass(frozen=True)
class Hello:
    interval_ms: int


@dataclass(frozen=True)
class Dispatch:
    sequence: int
    event: DomainEvent


@dataclass(frozen=True)
class Heartbeat:
    sequence: int | None


@dataclass(frozen=True)
class HeartbeatAck:
    pass


@dataclass(frozen=True)
class Reconnect:
    pass


@dataclass(frozen=True)
class InvalidateSession:
    pass


GatewayEvent = Hello | Dispatch | Heartbeat | HeartbeatAck | Reconnect | InvalidateSession


def decode_event(name: str, data: Any) -> DomainEvent:
    """Wrap a dispatch payload, typing only the session-relevant events."""
    if name == "READY":
        return ReadyEvent(data=data)
    if name == "RESUMED":
        return ResumedEvent(data=data)
    return DomainEvent(name=name, data=data)


def load_frame(raw: str | bytes) -> dict:
    """Parse a text frame, or a zlib-compressed binary frame, into a dict."""
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = zlib.decompress(raw).decode("utf-8")
        value = json.loads(raw)
    except (zlib.error, UnicodeDecodeError, ValueError) as e:
        raise ProtocolError("Malformed gateway frame", source=_SOURCE, exception=e) from e
    if not isinstance(value, dict) or "op" not in value:
        raise ProtocolError("Gateway frame is not an op object", source=_SOURCE)
    return value


def decode_frame(raw: str | bytes | dict) -> GatewayEvent:
    """Decode one inbound frame.

    Raises:
        ProtocolError: For malformed frames and unknown op codes.
    """
    frame = raw if isinstance(raw, dict) else load_frame(raw)
    op = frame.get("op")
    data = frame.get("d")
    try:
        match op:
            case OpCode.HELLO:
                return Hello(interval_ms=int(data["heartbeat_interval"]))
            case OpCode.DISPATCH:
                sequence = frame.get("s")
                name = frame.get("t")
                if not isinstance(sequence, int) or not isinstance(name, str):
                    raise ProtocolError("Dispatch without sequence or event name", source=_SOURCE)
                return Dispatch(sequence=sequence, event=decode_event(name, data))
            case OpCode.HEARTBEAT:
                return Heartbeat(sequence=None if data is None else int(data))
            case OpCode.HEARTBEAT_ACK:
                return HeartbeatAck()
            case OpCode.RECONNECT:
                return Reconnect()
            case OpCode.INVALIDATE_SESSION:
                return InvalidateSession()
    except (KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed payload for op {op}", source=_SOURCE, exception=e) from e
    raise ProtocolError(f"Unexpected op code {op!r}", source=_SOURCE)


# =============================================================================
# Outbound
# =============================================================================


def _frame(op: OpCode, payload: Any) -> dict:
    return {"op": int(op), "d": payload}


def encode_heartbeat(sequence: int | None) -> dict:
    return _frame(OpCode.HEARTBEAT, sequence)


def encode_identify(
    token: str,
    shard: tuple[int, int] | None = None,
    intents: Intents | int | None = None,
    large_threshold: int = 250,
    compress: bool = True,
) -> dict:
    payload: dict[str, Any] = {
        "token": token,
        "properties": {
            "$os": sys.platform,
            "$browser": "rxgateway",
            "$device": "rxgateway",
            "$referring_domain": "",
            "$referrer": "",
        },
        "large_threshold": large_threshold,
        "compress": compress,
        "v": GATEWAY_VERSION,
    }
    shard = validate_shard(shard)
    if shard is not None:
        payload["shard"] = list(shard)
    if intents is not None:
        payload["intents"] = int(intents)
    return _frame(OpCode.IDENTIFY, payload)


def encode_presence(game: Game | None, status: OnlineStatus, afk: bool) -> dict:
    # The gateway rejects "offline" for our own presence.
    if status is OnlineStatus.OFFLINE:
        status = OnlineStatus.INVISIBLE
    if game is None:
        activity = None
    elif game.kind is GameType.STREAMING and game.url is not None:
        activity = {"type": GameType.STREAMING.value, "url": game.url, "name": game.name}
    else:
        activity = {"name": game.name, "type": GameType.PLAYING.value}
    return _frame(
        OpCode.PRESENCE_UPDATE,
        {"afk": afk, "since": 0, "status": status.value, "game": activity},
    )


def encode_resume(token: str, session_id: str, sequence: int | None) -> dict:
    return _frame(OpCode.RESUME, {"seq": sequence, "token": token, "session_id": session_id})


def encode_member_sync(server_ids: Iterable[int | str]) -> dict:
    return _frame(OpCode.REQUEST_MEMBERS, {"guild_id": list(server_ids), "query": "", "limit": 0})


def encode_server_sync(server_ids: Iterable[int | str]) -> dict:
    return _frame(OpCode.SYNC_SERVERS, list(server_ids))


def encode_call_syncs(channel_ids: Iterable[int | str]) -> list[dict]:
    return [_frame(OpCode.SYNC_CALL, {"channel_id": channel}) for channel in channel_ids]
