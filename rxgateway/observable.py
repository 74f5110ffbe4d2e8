"""ReactiveX adapters over a gateway client.

:func:`event_stream` turns the pull-based ``next_event()`` loop into a hot
Observable driven by a task on the running asyncio loop. :class:`GatewayState`
is the value type of ``GatewayClient.connection_state``.
"""

import asyncio
from enum import Enum
from typing import TYPE_CHECKING

from reactivex import Observable
from reactivex.disposable import Disposable

from .mechanism import ClientClosedError

if TYPE_CHECKING:
    from .client import GatewayClient


class GatewayState(Enum):
    """Observable lifecycle states of a GatewayClient."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    RESUMING = "resuming"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"  # terminal: shut down, or recovery exhausted


def event_stream(client: "GatewayClient") -> Observable:
    """Observable of the events returned by ``client.next_event()``.

    Must be subscribed from inside a running event loop. The stream completes
    when the client is shut down and errors with whatever else
    ``next_event()`` raises. Disposing the subscription stops the pump but
    leaves the client open.

    Example:
        >>> client, ready = await GatewayClient.connect(url, token)
        >>> event_stream(client).pipe(
        ...     ops.filter(lambda e: e.name == "MESSAGE_CREATE"),
        ... ).subscribe(print)
    """

    def subscribe(observer, scheduler=None):
        async def pump() -> None:
            try:
                while True:
                    event = await client.next_event()
                    observer.on_next(event)
            except ClientClosedError:
                observer.on_completed()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                observer.on_error(e)

        task = asyncio.get_running_loop().create_task(pump())
        return Disposable(task.cancel)

    return Observable(subscribe)
