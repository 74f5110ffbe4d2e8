"""Gateway client: handshake, event loop, and session recovery.

The client owns the read half of the socket and drives the protocol from
the caller's task. The write half belongs to a :class:`HeartbeatWorker`
task; every outbound frame after the initial identify is posted to it.

Recovery has two tiers. A transport failure first tries to *resume* the
session on a new socket, keeping the worker and handing it the new write
half. If that is impossible (close code 4006, no session) or fails, the
client *reconnects*: the worker is aborted and a brand-new session is
built by the :class:`Reconnector`, which surfaces as a :class:`Reconnected`
event.
"""

import asyncio
import weakref
from dataclasses import dataclass
from typing import assert_never

from opentelemetry import trace
from opentelemetry._logs import LoggerProvider
from opentelemetry.metrics import MeterProvider
from opentelemetry.trace import TracerProvider
from reactivex import Observable
from reactivex import operators as ops
from reactivex.subject import BehaviorSubject

from .codec import (
    Dispatch,
    Heartbeat,
    HeartbeatAck,
    Hello,
    InvalidateSession,
    Reconnect,
    decode_frame,
    encode_call_syncs,
    encode_heartbeat,
    encode_identify,
    encode_member_sync,
    encode_presence,
    encode_server_sync,
)
from .config import GATEWAY_VERSION, GatewayConfig, build_gateway_url, validate_shard
from .heartbeat import (
    Abort,
    ChangeInterval,
    CommandChannel,
    HeartbeatWorker,
    ReplaceWriteHalf,
    SendPayload,
    SequenceUpdate,
)
from .mechanism import (
    ClientClosedError,
    GatewayError,
    OtherError,
    ProtocolError,
    TransportError,
)
from .model import (
    DomainEvent,
    Event,
    Game,
    Intents,
    OnlineStatus,
    ReadyEvent,
    Reconnected,
    ResumedEvent,
)
from .observable import GatewayState
from .reconnect import Reconnector
from .rest import GatewayLocator, HttpGatewayLocator
from .session import SessionState
from .telemetry import GatewayMetrics, LogContext, OTelLogger, get_default_providers
from .transport import Connector, ReadHalf, WebSocketConnector, WriteHalf
from .utils import get_full_error_info, get_short_error_info


@dataclass
class _Link:
    """Everything one successful handshake produces."""

    reader: ReadHalf
    worker: HeartbeatWorker
    session: SessionState
    ready: ReadyEvent


def _abandon_worker(loop: asyncio.AbstractEventLoop, channel: CommandChannel) -> None:
    """Stop a worker whose client was garbage-collected without shutdown()."""

    def abort() -> None:
        channel.post(Abort())
        channel.close()

    if not loop.is_closed():
        loop.call_soon_threadsafe(abort)


class GatewayClient:
    """A resumable gateway session.

    Create instances with :meth:`connect`. Events are pulled with
    :meth:`next_event`; presence and sync requests are fire-and-forget.

    Example:
        >>> client, ready = await GatewayClient.connect(
        ...     "wss://gateway.discord.gg", token, shard=(0, 2),
        ...     intents=Intents.GUILDS | Intents.GUILD_MESSAGES,
        ... )
        >>> async with client:
        ...     while True:
        ...         event = await client.next_event()
        ...         if isinstance(event, Reconnected):
        ...             resync(event.ready)
    """

    def __init__(
        self,
        endpoint: str,
        token: str,
        identify: dict,
        config: GatewayConfig,
        connector: Connector,
        locator: GatewayLocator,
        shard: tuple[int, int] | None = None,
        tracer_provider: TracerProvider | None = None,
        logger_provider: LoggerProvider | None = None,
        meter_provider: MeterProvider | None = None,
    ):
        """Prefer :meth:`connect`; a bare instance has no session yet."""
        self._endpoint = endpoint
        self._token = token
        self._identify = identify
        self._config = config
        self._policy = config.reconnect
        self._connector = connector

        shard_label = f"{shard[0]}/{shard[1]}" if shard is not None else ""
        self._name = config.name or (
            f"GatewayClient:{shard_label}" if shard_label else "GatewayClient"
        )

        # Auto-configure default providers if not provided
        if logger_provider is None:
            default_tracer, logger_provider = get_default_providers("rxgateway")
            tracer_provider = tracer_provider or default_tracer
        self._tracer = trace.get_tracer("rxgateway.client", tracer_provider=tracer_provider)
        self._base_logger = OTelLogger(
            logger_provider.get_logger("rxgateway"),
            source=self._name,
            context=LogContext(service="rxgateway", component="client", shard=shard_label),
        )
        self._logger = self._base_logger
        self._metrics = GatewayMetrics(
            meter_provider, {"gateway.shard": shard_label} if shard_label else None
        )
        self._reconnector = Reconnector(
            self._policy, locator, self._base_logger.with_context(component="reconnector")
        )

        self._reader: ReadHalf | None = None
        self._worker: HeartbeatWorker | None = None
        self._session: SessionState | None = None
        self._finalizer: weakref.finalize | None = None
        self._closed = False
        self._failed = False
        self._state_subject: BehaviorSubject[GatewayState] = BehaviorSubject(
            GatewayState.CONNECTING
        )

    @classmethod
    async def connect(
        cls,
        endpoint: str,
        token: str,
        shard: tuple[int, int] | None = None,
        intents: Intents | int | None = None,
        *,
        config: GatewayConfig | None = None,
        connector: Connector | None = None,
        locator: GatewayLocator | None = None,
        tracer_provider: TracerProvider | None = None,
        logger_provider: LoggerProvider | None = None,
        meter_provider: MeterProvider | None = None,
    ) -> tuple["GatewayClient", ReadyEvent]:
        """Open a session and wait for Ready.

        Args:
            endpoint: Gateway websocket URL, without the version query.
            token: Authentication token.
            shard: Optional ``(shard_id, total_shards)``, ``shard_id`` 0-based.
            intents: Optional intents bitmask.
            config: Tunables; defaults to ``GatewayConfig()``.
            connector: Transport factory; defaults to ``WebSocketConnector()``.
            locator: Gateway rediscovery; defaults to ``HttpGatewayLocator``
                on ``config.api_base``.
            tracer_provider: Optional OTel TracerProvider.
            logger_provider: Optional OTel LoggerProvider. If None, uses the
                default console providers.
            meter_provider: Optional OTel MeterProvider.

        Returns:
            The connected client and the Ready event of its session.

        Raises:
            ProtocolError: The server did not follow the handshake.
            TransportError: The transport failed during the handshake.
            OtherError: ``endpoint`` is not a websocket URL.
        """
        config = config if config is not None else GatewayConfig()
        shard = validate_shard(shard)
        identify = encode_identify(
            token,
            shard=shard,
            intents=intents,
            large_threshold=config.large_threshold,
            compress=config.compress,
        )
        client = cls(
            endpoint,
            token,
            identify,
            config=config,
            connector=connector if connector is not None else WebSocketConnector(),
            locator=locator if locator is not None else HttpGatewayLocator(config.api_base),
            shard=shard,
            tracer_provider=tracer_provider,
            logger_provider=logger_provider,
            meter_provider=meter_provider,
        )
        with client._tracer.start_as_current_span("gateway.handshake"):
            link = await client._handshake(endpoint)
        client._install(link)
        client._set_state(GatewayState.CONNECTED)
        return client, link.ready

    # ------------------------------------------------------------------ #
    # Public state
    # ------------------------------------------------------------------ #

    @property
    def session(self) -> SessionState:
        if self._session is None:
            raise OtherError("Client has no session yet", source=self._name)
        return self._session

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def connection_state(self) -> Observable:
        """Stream of GatewayState; new subscribers get the current state first."""
        return self._state_subject.pipe(ops.distinct_until_changed())

    def _set_state(self, state: GatewayState) -> None:
        self._logger.debug(f"Connection state: {state.value}")
        self._state_subject.on_next(state)

    # ------------------------------------------------------------------ #
    # Handshake
    # ------------------------------------------------------------------ #

    async def _handshake(self, endpoint: str) -> _Link:
        self._ensure_open()
        url = build_gateway_url(endpoint)
        self._logger.debug(f"Gateway: {url}")
        reader, writer = await self._connector.connect(url)

        try:
            interval = await self._await_hello(reader)
            await writer.send_json(self._identify)
        except BaseException:
            await writer.close()
            raise

        worker = self._spawn_worker(writer, interval, sequence=None)
        try:
            sequence, ready = await self._await_ready(reader, worker)
        except BaseException:
            await worker.stop(self._policy.worker_join_timeout)
            raise

        if ready.version != GATEWAY_VERSION:
            self._logger.warning(
                f"Got protocol version {ready.version} instead of {GATEWAY_VERSION}"
            )
        session = SessionState.from_ready(
            self._token, self._identify, endpoint, sequence, ready
        )
        worker.post(SequenceUpdate(sequence))
        self._logger.info(f"Session {session.session_id} ready on {endpoint}")
        return _Link(reader=reader, worker=worker, session=session, ready=ready)

    async def _await_hello(self, reader: ReadHalf) -> int:
        frame = decode_frame(await reader.recv())
        match frame:
            case Hello(interval_ms=interval):
                return interval
            case _:
                self._logger.debug(f"Unexpected event: {frame!r}")
                raise ProtocolError("Expected Hello during handshake", source=self._name)

    async def _await_ready(
        self, reader: ReadHalf, worker: HeartbeatWorker
    ) -> tuple[int, ReadyEvent]:
        frame = decode_frame(await reader.recv())
        match frame:
            case Dispatch(sequence=sequence, event=ReadyEvent() as ready):
                return sequence, ready
            case InvalidateSession():
                self._logger.debug("Session invalidated, reidentifying")
                if not worker.post(SendPayload(self._identify)):
                    raise OtherError(
                        "Heartbeat worker closed during handshake", source=self._name
                    )
            case _:
                self._logger.debug(f"Unexpected event: {frame!r}")
                raise ProtocolError(
                    "Expected Ready or InvalidateSession during handshake",
                    source=self._name,
                )

        frame = decode_frame(await reader.recv())
        match frame:
            case Dispatch(sequence=sequence, event=ReadyEvent() as ready):
                return sequence, ready
            case InvalidateSession():
                raise ProtocolError(
                    "Invalid session during handshake. Double-check your token "
                    "or consider waiting 5 seconds between starting shards.",
                    source=self._name,
                )
            case _:
                self._logger.debug(f"Unexpected event: {frame!r}")
                raise ProtocolError("Expected Ready during handshake", source=self._name)

    def _spawn_worker(
        self, writer: WriteHalf, interval_ms: int, sequence: int | None
    ) -> HeartbeatWorker:
        return HeartbeatWorker(
            writer,
            interval_ms,
            self._base_logger.with_context(component="heartbeat"),
            sequence=sequence,
            tick=self._config.heartbeat_tick,
            metrics=self._metrics,
        ).start()

    def _install(self, link: _Link) -> None:
        """Make ``link`` the live transport and session."""
        self._reader = link.reader
        self._worker = link.worker
        self._session = link.session
        if self._finalizer is not None:
            self._finalizer.detach()
        self._finalizer = weakref.finalize(
            self, _abandon_worker, asyncio.get_running_loop(), link.worker.channel
        )
        self._bind_session_logs()

    def _bind_session_logs(self) -> None:
        """Tag client and worker records with the current session id."""
        session_id = ""
        if self._session is not None and self._session.session_id:
            session_id = self._session.session_id
        self._logger = self._base_logger.with_context(session_id=session_id)
        if self._worker is not None:
            self._worker.rebind_logger(
                self._base_logger.with_context(component="heartbeat", session_id=session_id)
            )

    # ------------------------------------------------------------------ #
    # Event loop
    # ------------------------------------------------------------------ #

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClientClosedError("Client was shut down", source=self._name)

    def _ensure_usable(self) -> None:
        self._ensure_open()
        if self._failed or self._reader is None:
            raise OtherError("Client has no usable connection", source=self._name)

    async def next_event(self) -> Event:
        """Return the next dispatched event.

        Heartbeat traffic, invalidated sessions and resumes are handled
        internally. After a full reconnect a :class:`Reconnected` is returned
        instead of a dispatch.

        Raises:
            ProtocolError: An undecodable frame or a broken resume sequence.
            TransportError: Every recovery path failed; the client is unusable.
            ClientClosedError: The client was shut down.
        """
        self._ensure_usable()
        assert self._reader is not None and self._worker is not None
        assert self._session is not None

        while True:
            try:
                frame = decode_frame(await self._reader.recv())
            except TransportError as e:
                return await self._recover(e)

            match frame:
                case Dispatch(sequence=sequence, event=event):
                    self._session.observe(sequence)
                    self._worker.post(SequenceUpdate(sequence))
                    self._metrics.add(self._metrics.dispatches)
                    return event
                case Heartbeat(sequence=sequence):
                    self._logger.debug(f"Heartbeat received with seq {sequence}")
                    if sequence is not None:
                        self._session.observe(sequence)
                        self._worker.post(SequenceUpdate(sequence))
                    self._worker.post(
                        SendPayload(encode_heartbeat(self._session.last_sequence))
                    )
                case HeartbeatAck():
                    pass
                case Hello(interval_ms=interval):
                    self._logger.debug(f"Mysterious late-game hello: {interval}")
                case Reconnect():
                    self._logger.info("Server requested a reconnect")
                    return await self._reconnect()
                case InvalidateSession():
                    self._logger.debug("Session invalidated, reidentifying")
                    self._session.invalidate()
                    self._bind_session_logs()
                    self._worker.post(SendPayload(self._identify))
                case _:
                    assert_never(frame)

    # ------------------------------------------------------------------ #
    # Recovery
    # ------------------------------------------------------------------ #

    async def _recover(self, error: TransportError) -> Event:
        if self._closed:
            raise ClientClosedError(
                "Client was shut down", source=self._name, exception=error
            ) from error

        assert self._session is not None
        if error.forbids_resume:
            self._logger.info(f"Closed with {error.code}, session cannot be resumed")
        elif self._session.resumable:
            self._logger.warning(f"Connection lost, resuming: {error}")
            try:
                return await self._resume()
            except ClientClosedError:
                raise
            except GatewayError as e:
                self._logger.debug(f"Failed to resume: {get_short_error_info(e)}")
        else:
            self._logger.warning(f"Connection lost without a session, reconnecting: {error}")
        return await self._reconnect()

    async def _resume(self) -> DomainEvent:
        assert self._session is not None and self._worker is not None
        session = self._session
        self._set_state(GatewayState.RESUMING)

        with self._tracer.start_as_current_span("gateway.resume"):
            request = session.resume_frame()
            await asyncio.sleep(self._policy.resume_delay)
            self._ensure_open()
            self._logger.info(f"Resuming session {session.session_id}")

            reader, writer = await self._connector.connect(
                build_gateway_url(session.resume_endpoint)
            )
            try:
                await writer.send_json(request)
                sequence, event = await self._await_resumed(reader, writer)
                if self._closed:
                    raise ClientClosedError("Client was shut down", source=self._name)
            except BaseException:
                await writer.close()
                raise

        match event:
            case ResumedEvent():
                self._logger.info("Resumed successfully")
                session.observe(sequence)
            case ReadyEvent():
                self._logger.info(f"Resume produced a new session {event.session_id}")
                session.adopt(event, sequence)
            case _:
                session.observe(sequence)

        self._reader = reader
        self._worker.post(ReplaceWriteHalf(writer))
        self._worker.post(SequenceUpdate(sequence))
        self._bind_session_logs()
        self._metrics.add(self._metrics.resumes)
        self._set_state(GatewayState.CONNECTED)
        return event

    async def _await_resumed(
        self, reader: ReadHalf, writer: WriteHalf
    ) -> tuple[int, DomainEvent]:
        assert self._worker is not None
        while True:
            frame = decode_frame(await reader.recv())
            match frame:
                case Hello(interval_ms=interval):
                    self._worker.post(ChangeInterval(interval))
                case Dispatch(sequence=sequence, event=event):
                    return sequence, event
                case InvalidateSession():
                    self._logger.debug("Session invalidated in resume, reidentifying")
                    await writer.send_json(self._identify)
                case _:
                    self._logger.debug(f"Unexpected event: {frame!r}")
                    raise ProtocolError("Unexpected event during resume", source=self._name)

    async def _reconnect(self) -> Reconnected:
        self._ensure_open()
        self._set_state(GatewayState.RECONNECTING)
        with self._tracer.start_as_current_span("gateway.reconnect"):
            if self._worker is not None:
                await self._worker.stop(self._policy.worker_join_timeout)

            try:
                link, endpoint = await self._reconnector.reconnect(
                    self._endpoint, self._token, self._handshake, lambda: self._closed
                )
            except ClientClosedError:
                raise
            except GatewayError as e:
                self._failed = True
                self._logger.error(f"Reconnect failed, giving up:\n{get_full_error_info(e)}")
                self._set_state(GatewayState.CLOSED)
                raise

        if self._closed:
            await link.worker.stop(self._policy.worker_join_timeout)
            raise ClientClosedError("Client was shut down during reconnect", source=self._name)

        self._endpoint = endpoint
        self._install(link)
        self._metrics.add(self._metrics.reconnects)
        self._set_state(GatewayState.CONNECTED)
        return Reconnected(ready=link.ready)

    # ------------------------------------------------------------------ #
    # Outbound commands
    # ------------------------------------------------------------------ #

    def _post(self, payload: dict) -> None:
        worker = self._worker
        if worker is None or not worker.post(SendPayload(payload)):
            self._logger.debug("Dropped outbound frame, no heartbeat worker", op=payload["op"])

    def send_presence(
        self,
        game: Game | None,
        status: OnlineStatus = OnlineStatus.ONLINE,
        afk: bool = False,
    ) -> None:
        """Set the presence; ``afk`` helps the server route notifications."""
        self._post(encode_presence(game, status, afk))

    def set_game(self, game: Game | None) -> None:
        self.send_presence(game, OnlineStatus.ONLINE, False)

    def set_game_name(self, name: str) -> None:
        self.set_game(Game.playing(name))

    def send_member_sync(self, server_ids) -> None:
        """Request the full member lists of large servers."""
        self._post(encode_member_sync(server_ids))

    def sync_servers(self, server_ids) -> None:
        """Request online member lists for ``server_ids``."""
        self._post(encode_server_sync(server_ids))

    def sync_calls(self, channel_ids) -> None:
        """Request active call state, one request per channel."""
        for frame in encode_call_syncs(channel_ids):
            self._post(frame)

    # ------------------------------------------------------------------ #
    # Shutdown
    # ------------------------------------------------------------------ #

    async def shutdown(self) -> None:
        """Stop the heartbeat worker and close the socket.

        Raises:
            RuntimeError: If called a second time.
        """
        if self._closed:
            raise RuntimeError(f"{self._name} was already shut down")
        self._closed = True
        self._logger.info("Closing...")
        if self._finalizer is not None:
            self._finalizer.detach()
            self._finalizer = None
        if self._worker is not None:
            await self._worker.stop(self._policy.worker_join_timeout)
        self._set_state(GatewayState.CLOSED)
        self._state_subject.on_completed()
        self._logger.info("Closed.")

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self._closed:
            await self.shutdown()
