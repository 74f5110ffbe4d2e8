"""Heartbeat worker: the single writer of a gateway socket.

The worker is an asyncio task that owns the write half of the transport.
Every tick it drains its :class:`CommandChannel` (frames to send, sequence
updates, interval changes, a replacement write half, or ``Abort``) and then
writes a heartbeat if the timer is due. It never reads from the socket.

The first heartbeat is delayed by a random fraction of the interval so
that many shards started together do not beat in lockstep.
"""

import asyncio
import random
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, assert_never

from .codec import encode_heartbeat
from .mechanism import TransportError
from .telemetry import GatewayMetrics, OTelLogger
from .transport import WriteHalf
from .utils import get_short_error_info, join_task


# =============================================================================
# Control messages
# =============================================================================


@dataclass(frozen=True)
class SendPayload:
    payload: Any


@dataclass(frozen=True)
class SequenceUpdate:
    sequence: int


@dataclass(frozen=True)
class ChangeInterval:
    interval_ms: int


@dataclass(frozen=True)
class ReplaceWriteHalf:
    writer: WriteHalf


@dataclass(frozen=True)
class Abort:
    pass


ControlMessage = SendPayload | SequenceUpdate | ChangeInterval | ReplaceWriteHalf | Abort


class CommandChannel:
    """FIFO of control messages with a non-blocking consumer side.

    Closing the channel is how producers that disappear signal the worker;
    messages posted before the close are still delivered.
    """

    def __init__(self):
        self._queue: asyncio.Queue[ControlMessage] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def post(self, message: ControlMessage) -> bool:
        """Queue ``message``. Returns False if the channel is closed."""
        if self._closed:
            return False
        self._queue.put_nowait(message)
        return True

    def close(self) -> None:
        self._closed = True

    def drain(self) -> Iterator[ControlMessage]:
        """Yield queued messages until the queue is empty."""
        while True:
            try:
                yield self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return


# =============================================================================
# Timer
# =============================================================================


class HeartbeatTimer:
    """Periodic deadline checked by polling."""

    def __init__(
        self,
        interval_ms: int,
        clock: Callable[[], float],
        first_delay_ms: float | None = None,
    ):
        self.interval = interval_ms / 1000
        self._clock = clock
        delay = self.interval if first_delay_ms is None else first_delay_ms / 1000
        self._deadline = clock() + delay

    def check_tick(self) -> bool:
        """Return True once per elapsed period."""
        now = self._clock()
        if now < self._deadline:
            return False
        self._deadline += self.interval
        if self._deadline <= now:
            # Fell behind by more than a period; do not burst.
            self._deadline = now + self.interval
        return True


# =============================================================================
# Worker
# =============================================================================


class HeartbeatWorker:
    """Write-only task that keeps a gateway session alive.

    Parameters
    ----------
    writer : WriteHalf
        The write half this worker takes ownership of.
    interval_ms : int
        Heartbeat interval announced by Hello.
    logger : OTelLogger
        Destination for worker logs.
    sequence : int | None
        Last sequence known at spawn time.
    tick : float
        Polling granularity in seconds.
    rng : random.Random | None
        Jitter source, private to this worker.
    clock : Callable[[], float]
        Monotonic clock, private to this worker.
    metrics : GatewayMetrics | None
        Counters for written heartbeats and failed writes.
    """

    def __init__(
        self,
        writer: WriteHalf,
        interval_ms: int,
        logger: OTelLogger,
        sequence: int | None = None,
        tick: float = 0.1,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: GatewayMetrics | None = None,
    ):
        self.channel = CommandChannel()
        self._writer = writer
        self._interval_ms = interval_ms
        self._sequence = sequence
        self._tick = tick
        self._rng = rng if rng is not None else random.Random()
        self._clock = clock
        self._logger = logger
        self._metrics = metrics if metrics is not None else GatewayMetrics()
        self._timer: HeartbeatTimer | None = None
        self._task: asyncio.Task | None = None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self) -> "HeartbeatWorker":
        if self._task is not None:
            raise RuntimeError("heartbeat worker already started")
        self._task = asyncio.get_running_loop().create_task(
            self.run(), name=f"{self._logger.source}:heartbeat"
        )
        return self

    def post(self, message: ControlMessage) -> bool:
        return self.channel.post(message)

    def rebind_logger(self, logger: OTelLogger) -> None:
        """Use ``logger`` for every later record."""
        self._logger = logger

    async def join(self, timeout: float) -> bool:
        """Wait for the worker to exit; cancel it after ``timeout``."""
        if self._task is None:
            return True
        return await join_task(self._task, timeout)

    async def stop(self, timeout: float = 5.0) -> None:
        """Post ``Abort``, close the channel and wait for the task."""
        self.channel.post(Abort())
        self.channel.close()
        if not await self.join(timeout):
            self._logger.warning("Heartbeat worker did not stop in time, cancelled")

    async def run(self) -> None:
        jitter = self._rng.random()
        self._timer = HeartbeatTimer(
            self._interval_ms, self._clock, first_delay_ms=self._interval_ms * jitter
        )
        self._logger.debug(
            f"Heartbeat worker started, interval {self._interval_ms}ms, "
            f"first beat after {self._interval_ms * jitter:.0f}ms"
        )

        try:
            while True:
                await asyncio.sleep(self._tick)
                if not await self._drain():
                    break
                if self._timer.check_tick():
                    if await self._write(encode_heartbeat(self._sequence), "heartbeat"):
                        self._metrics.add(self._metrics.heartbeats)
        finally:
            # A finished worker accepts no more messages.
            self.channel.close()
            self._logger.debug("Heartbeat worker stopping, closing socket")
            await self._writer.close()

    async def _drain(self) -> bool:
        """Apply every queued message; False means stop."""
        for message in self.channel.drain():
            match message:
                case SendPayload(payload=payload):
                    await self._write(payload, "gateway message")
                case SequenceUpdate(sequence=sequence):
                    self._sequence = sequence
                case ChangeInterval(interval_ms=interval_ms):
                    self._interval_ms = interval_ms
                    self._timer = HeartbeatTimer(interval_ms, self._clock)
                case ReplaceWriteHalf(writer=writer):
                    if writer is not self._writer:
                        await self._writer.close()
                    self._writer = writer
                case Abort():
                    return False
                case _:
                    assert_never(message)
        return not self.channel.closed

    async def _write(self, payload: Any, what: str) -> bool:
        try:
            await self._writer.send_json(payload)
        except TransportError as e:
            self._metrics.add(self._metrics.send_failures)
            self._logger.warning(
                f"Error sending {what}: {get_short_error_info(e)}",
                interval_ms=self._interval_ms,
            )
            return False
        except Exception as e:
            self._metrics.add(self._metrics.send_failures)
            self._logger.error(
                f"Failed to write {what}, dropped: {get_short_error_info(e)}",
                interval_ms=self._interval_ms,
            )
            return False
        return True
