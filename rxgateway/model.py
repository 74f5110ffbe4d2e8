"""Domain values routed by the gateway.

The gateway treats dispatched payloads as opaque: every dispatch becomes a
:class:`DomainEvent` carrying the event name and raw data. Only the two
events that drive the session (``READY`` and ``RESUMED``) get their own
types. :class:`Reconnected` is produced by the client itself after a full
reconnect, so callers can tell a fresh session apart from a genuine Ready.
"""

from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Any


class Intents(IntFlag):
    """Gateway intents bitmask sent in the identify payload."""

    GUILDS = 1 << 0
    GUILD_MEMBERS = 1 << 1
    GUILD_BANS = 1 << 2
    GUILD_EMOJIS = 1 << 3
    GUILD_INTEGRATIONS = 1 << 4
    GUILD_WEBHOOKS = 1 << 5
    GUILD_INVITES = 1 << 6
    GUILD_VOICE_STATES = 1 << 7
    GUILD_PRESENCES = 1 << 8
    GUILD_MESSAGES = 1 << 9
    GUILD_MESSAGE_REACTIONS = 1 << 10
    GUILD_MESSAGE_TYPING = 1 << 11
    DIRECT_MESSAGES = 1 << 12
    DIRECT_MESSAGE_REACTIONS = 1 << 13
    DIRECT_MESSAGE_TYPING = 1 << 14


class OnlineStatus(Enum):
    ONLINE = "online"
    IDLE = "idle"
    DND = "dnd"
    INVISIBLE = "invisible"
    OFFLINE = "offline"


class GameType(Enum):
    PLAYING = "playing"
    STREAMING = "streaming"


@dataclass(frozen=True)
class Game:
    """Activity shown in a presence update."""

    name: str
    kind: GameType = GameType.PLAYING
    url: str | None = None

    @classmethod
    def playing(cls, name: str) -> "Game":
        return cls(name=name)

    @classmethod
    def streaming(cls, name: str, url: str) -> "Game":
        return cls(name=name, kind=GameType.STREAMING, url=url)


@dataclass(frozen=True)
class DomainEvent:
    """A dispatched event, kept as the raw ``t`` name and ``d`` payload."""

    name: str
    data: Any = field(default=None, repr=False)


@dataclass(frozen=True)
class ReadyEvent(DomainEvent):
    """The ``READY`` dispatch that completes a handshake."""

    name: str = "READY"

    @property
    def session_id(self) -> str:
        return self._field("session_id", "")

    @property
    def version(self) -> int | None:
        return self._field("v", None)

    @property
    def resume_url(self) -> str | None:
        return self._field("resume_gateway_url", None) or self._field("resume_url", None)

    @property
    def user(self) -> dict | None:
        return self._field("user", None)

    def _field(self, key: str, default):
        if isinstance(self.data, dict):
            return self.data.get(key, default)
        return default


@dataclass(frozen=True)
class ResumedEvent(DomainEvent):
    """The ``RESUMED`` dispatch marking a successful resume."""

    name: str = "RESUMED"


@dataclass(frozen=True)
class Reconnected:
    """Returned by ``next_event`` after the session was replaced.

    Events between the old session and ``ready`` were lost.
    """

    ready: ReadyEvent
    name: str = "RECONNECTED"


Event = DomainEvent | Reconnected
