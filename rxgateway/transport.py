"""Message-stream transport for the gateway.

A connected socket is split into two owners: a :class:`ReadHalf` kept by
the client and a :class:`WriteHalf` handed to the heartbeat worker. The core
only depends on these protocols and on a :class:`Connector` that opens new
transports; :class:`WebSocketConnector` is the ``websockets`` implementation.
"""

import asyncio
import json
from typing import Any, Protocol, runtime_checkable

import websockets
from websockets import ClientConnection

from .mechanism import OtherError, TransportError
from .utils import get_short_error_info


@runtime_checkable
class ReadHalf(Protocol):
    async def recv(self) -> str | bytes:
        """Return the next frame.

        Raises:
            TransportError: On I/O failure or when the peer closed.
        """
        ...


@runtime_checkable
class WriteHalf(Protocol):
    async def send_json(self, value: Any) -> None:
        """Serialize and write one frame.

        Raises:
            TransportError: On I/O failure or when the connection is closed.
        """
        ...

    async def close(self) -> None:
        """Send a close frame. Never raises."""
        ...


class Connector(Protocol):
    async def connect(self, url: str) -> tuple[ReadHalf, WriteHalf]:
        """Open a transport to ``url`` and split it.

        Raises:
            TransportError: If the connection cannot be established.
            OtherError: If ``url`` is not a valid websocket URI.
        """
        ...


def _closed_error(e: websockets.ConnectionClosed, note: str) -> TransportError:
    close = e.rcvd
    return TransportError(
        note,
        source="transport",
        exception=e,
        code=close.code if close is not None else None,
        reason=close.reason if close is not None else "",
    )


class WebSocketReadHalf:
    def __init__(self, connection: ClientConnection):
        self._connection = connection

    async def recv(self) -> str | bytes:
        try:
            return await self._connection.recv()
        except websockets.ConnectionClosed as e:
            raise _closed_error(e, "Connection closed") from e
        except OSError as e:
            raise TransportError(
                f"Network error: {get_short_error_info(e)}", source="transport", exception=e
            ) from e


class WebSocketWriteHalf:
    def __init__(self, connection: ClientConnection, close_timeout: float = 1.0):
        self._connection = connection
        self._close_timeout = close_timeout

    async def send_json(self, value: Any) -> None:
        try:
            text = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise TransportError(
                f"Cannot serialize frame: {get_short_error_info(e)}",
                source="transport",
                exception=e,
            ) from e
        try:
            await self._connection.send(text)
        except websockets.ConnectionClosed as e:
            raise _closed_error(e, "Send on closed connection") from e
        except OSError as e:
            raise TransportError(
                f"Network error: {get_short_error_info(e)}", source="transport", exception=e
            ) from e

    async def close(self) -> None:
        try:
            await asyncio.wait_for(self._connection.close(), timeout=self._close_timeout)
        except (TimeoutError, OSError, websockets.ConnectionClosed):
            pass


def split(connection: ClientConnection) -> tuple[WebSocketReadHalf, WebSocketWriteHalf]:
    return WebSocketReadHalf(connection), WebSocketWriteHalf(connection)


class WebSocketConnector:
    """Open gateway transports with :func:`websockets.connect`.

    The gateway runs its own heartbeat, so websocket-level pings are off.
    """

    def __init__(self, open_timeout: float = 10.0, max_size: int | None = None):
        self.open_timeout = open_timeout
        self.max_size = max_size

    async def connect(self, url: str) -> tuple[WebSocketReadHalf, WebSocketWriteHalf]:
        try:
            connection = await websockets.connect(
                url,
                ping_interval=None,
                max_size=self.max_size,
                open_timeout=self.open_timeout,
            )
        except websockets.InvalidURI as e:
            raise OtherError("Invalid gateway URL", source="transport", exception=e) from e
        except (OSError, TimeoutError, websockets.InvalidHandshake) as e:
            raise TransportError(
                f"Cannot connect to {url}", source="transport", exception=e
            ) from e
        return split(connection)
