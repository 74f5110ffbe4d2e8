"""Tests for the websockets-backed transport against a local server."""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
import websockets

from rxgateway.mechanism import OtherError, TransportError
from rxgateway.transport import ReadHalf, WebSocketConnector, WebSocketWriteHalf, WriteHalf


async def serve_once(handler):
    server = await websockets.serve(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    return server, f"ws://127.0.0.1:{port}"


def test_split_halves_and_close_code():
    received = []

    async def handler(connection):
        await connection.send(json.dumps({"op": 10, "d": {"heartbeat_interval": 1000}}))
        received.append(json.loads(await connection.recv()))
        await connection.close(4006, "session no longer valid")

    async def main():
        server, url = await serve_once(handler)
        try:
            reader, writer = await WebSocketConnector().connect(url)
            assert isinstance(reader, ReadHalf)
            assert isinstance(writer, WriteHalf)

            assert json.loads(await reader.recv())["op"] == 10
            await writer.send_json({"op": 1, "d": None})

            with pytest.raises(TransportError) as info:
                await reader.recv()
            assert info.value.code == 4006
            assert info.value.forbids_resume

            with pytest.raises(TransportError):
                await writer.send_json({"op": 1, "d": None})
            await writer.close()
        finally:
            server.close()
            await server.wait_closed()

    asyncio.run(main())
    assert received == [{"op": 1, "d": None}]


def test_invalid_uri():
    async def main():
        await WebSocketConnector().connect("not a websocket uri")

    with pytest.raises(OtherError):
        asyncio.run(main())


def test_unserializable_frame_is_a_transport_error():
    connection = MagicMock()
    writer = WebSocketWriteHalf(connection)

    with pytest.raises(TransportError, match="Cannot serialize"):
        asyncio.run(writer.send_json({"op": 12, "d": [object()]}))
    connection.send.assert_not_called()
