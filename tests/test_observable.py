"""Tests for the ReactiveX event stream adapter."""

import asyncio

from reactivex import operators as ops

from conftest import FakeConnector, connect_client, dispatch, hello, ready, wait_for

from rxgateway import ProtocolError, event_stream


def test_stream_emits_events_and_completes_on_shutdown():
    async def main():
        connector = FakeConnector(
            [hello(), ready(1), dispatch(2, "A"), dispatch(3, "B"), dispatch(4, "C")]
        )
        client, _ = await connect_client(connector)
        names, completed = [], []

        event_stream(client).pipe(
            ops.map(lambda event: event.name),
            ops.filter(lambda name: name != "B"),
        ).subscribe(names.append, on_completed=lambda: completed.append(True))

        await wait_for(lambda: names == ["A", "C"])
        await client.shutdown()
        await wait_for(lambda: completed)

    asyncio.run(main())


def test_stream_errors_on_protocol_error():
    async def main():
        connector = FakeConnector([hello(), ready(1), "garbage"])
        client, _ = await connect_client(connector)
        errors = []

        event_stream(client).subscribe(on_error=errors.append)
        await wait_for(lambda: errors)
        assert isinstance(errors[0], ProtocolError)
        await client.shutdown()

    asyncio.run(main())


def test_dispose_stops_pump_but_keeps_client_open():
    async def main():
        connector = FakeConnector([hello(), ready(1)])
        client, _ = await connect_client(connector)

        subscription = event_stream(client).subscribe(lambda event: None)
        await asyncio.sleep(0.01)
        subscription.dispose()
        await asyncio.sleep(0.01)

        assert not client.closed
        assert not connector.links[0].writer.closed
        await client.shutdown()

    asyncio.run(main())
