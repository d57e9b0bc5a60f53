"""
Runtime execution shell for one camera connection.

Responsibilities:
- Own the authoritative ConnectionState and publish every snapshot
- Own exactly one relay channel and one negotiation engine at a time
- Call the pure reducer for every event
- Execute commands with side effects (channel I/O, negotiation, media sink)
- Convert adapter exceptions into events

Non-responsibilities:
- Retry timing (ReconnectionSupervisor)
- Rendering (media sink)
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Sequence
from urllib.parse import quote

from adapters.negotiation.base import EngineFactory, NegotiationEngine
from adapters.relay.base import ChannelFactory, RelayChannel, RelayClosed
from constants import (
    DEFAULT_STUN_SERVERS,
    LOG_PAYLOAD_PREVIEW_CHARS,
    METRIC_CONNECT_TO_MEDIA,
    RELAY_NORMAL_CLOSURE_CODE,
    RELAY_VIEWER_PATH_TEMPLATE,
)
from observability.logger import log_event, now_ms
from observability.metrics import cancel_timer, start_timer, stop_timer
from protocol.messages import OutboundMessage, decode_inbound, encode_outbound
from signaling.commands import (
    AddRemoteCandidate,
    ApplyRemoteDescription,
    AttachMedia,
    CloseChannel,
    Command,
    DetachMedia,
    LogEvent,
    OpenChannel,
    SendSignal,
    StartNegotiation,
    StopNegotiation,
)
from signaling.errors import ParseError, ViewerError
from signaling.events import (
    ChannelClosed,
    ChannelError,
    ChannelMessage,
    ChannelOpened,
    ChannelParseError,
    CloseRequested,
    ConnectRequested,
    DisconnectRequested,
    Event,
    EventType,
    LocalSignal,
    NegotiationFailed,
    PeerClosed,
    RemoteTrack,
)
from signaling.reducer import reduce
from signaling.state_dataclass import ConnectionState, MediaHandle
from signaling.state_stream import StateStream


MediaSink = Callable[[MediaHandle | None], Awaitable[None]]


def build_relay_url(server_url: str, camera_id: str) -> str:
    """{server_url}/ws/viewer/{camera_id}, camera id path-escaped."""
    return server_url.rstrip("/") + RELAY_VIEWER_PATH_TEMPLATE.format(
        camera_id=quote(camera_id, safe="")
    )


async def _default_channel_factory(url: str) -> RelayChannel:
    # Imported lazily so tests with fake channels never need a socket stack
    from adapters.relay.websocket_channel import open_websocket_channel  # pylint: disable=import-outside-toplevel

    return await open_websocket_channel(url)


def _default_engine_factory(ice_servers: Sequence[str]) -> NegotiationEngine:
    from adapters.negotiation.aiortc_engine import build_aiortc_engine  # pylint: disable=import-outside-toplevel

    return build_aiortc_engine(ice_servers)


class SignalingSession:
    """
    One session == one camera == at most one live channel/engine pair.

    Architectural role:
    SignalingSession is the bridge between the pure signaling reducer
    (immutable ConnectionState + commands) and the imperative world
    (relay channel, negotiation engine, media sink, logging, time).

    Guarantees:
    - Reducer is called exactly once per incoming event
    - State is published before any command runs
    - connect() / disconnect() / close() never raise
    - Events from a torn-down attempt are ignored by the reducer
    """

    def __init__(
        self,
        camera_id: str,
        server_url: str,
        *,
        channel_factory: ChannelFactory | None = None,
        engine_factory: EngineFactory | None = None,
        ice_servers: Sequence[str] = DEFAULT_STUN_SERVERS,
        media_sink: MediaSink | None = None,
    ) -> None:
        self._camera_id = camera_id
        self._server_url = server_url
        self._channel_factory = channel_factory or _default_channel_factory
        self._engine_factory = engine_factory or _default_engine_factory
        self._ice_servers = tuple(ice_servers)
        self._media_sink = media_sink

        self._stream = StateStream(ConnectionState())

        # Exclusively owned resources of the current attempt
        self._channel: RelayChannel | None = None
        self._channel_task: asyncio.Task[None] | None = None
        self._engine: NegotiationEngine | None = None

        self._media_timer: str | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def camera_id(self) -> str:
        return self._camera_id

    @property
    def url(self) -> str:
        return build_relay_url(self._server_url, self._camera_id)

    @property
    def state(self) -> ConnectionState:
        """
        Return the current immutable connection state.

        Consumers must never hold on to it as "live"; subscribe to
        `stream` for changes.
        """
        return self._stream.current

    @property
    def stream(self) -> StateStream:
        return self._stream

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Start a new connection attempt.

        No-op while the relay handshake of the current attempt is in
        flight, or when camera_id is empty.
        Returns once the attempt has started; the outcome is observed
        through state snapshots.
        """
        await self._handle_safely(
            ConnectRequested(
                event_type=EventType.CONNECT_REQUESTED,
                ts_ms=now_ms(),
                camera_id=self._camera_id,
                url=self.url,
            )
        )

    async def disconnect(self) -> None:
        """Tear everything down. Idempotent, safe from any phase."""
        await self._handle_safely(
            DisconnectRequested(
                event_type=EventType.DISCONNECT_REQUESTED,
                ts_ms=now_ms(),
            )
        )

    async def close(self) -> None:
        """Tear everything down and end the session's scope."""
        await self._handle_safely(
            CloseRequested(
                event_type=EventType.CLOSE_REQUESTED,
                ts_ms=now_ms(),
            )
        )

    # ------------------------------------------------------------------
    # Event pipeline
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event.

        Processing steps:
        1. Pass the current state and event to the pure reducer
        2. Swap in and publish the new state (subscribers run synchronously)
        3. Execute all emitted commands sequentially

        Steps 1-2 never await, so every transition is atomic with respect
        to the other event sources (channel task, engine callbacks, timers).
        """
        prev_state = self._stream.current
        new_state, commands = reduce(prev_state, event)
        if new_state != prev_state:
            self._stream.publish(new_state)

        for cmd in commands:
            await self._execute_command(cmd)

    async def _handle_safely(self, event: Event) -> None:
        try:
            await self.handle_event(event)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "SESSION_INTERNAL_ERROR",
                "camera_id": self._camera_id,
                "source_event": event.event_type.value,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        if isinstance(cmd, LogEvent):
            log_event({"camera_id": self._camera_id, **cmd.event})

        elif isinstance(cmd, OpenChannel):
            self._open_channel(cmd)

        elif isinstance(cmd, CloseChannel):
            await self._close_channel(cmd)

        elif isinstance(cmd, SendSignal):
            await self._send_signal(cmd.attempt_id, cmd.message)

        elif isinstance(cmd, StartNegotiation):
            await self._start_negotiation(cmd.attempt_id)

        elif isinstance(cmd, StopNegotiation):
            await self._stop_negotiation()

        elif isinstance(cmd, ApplyRemoteDescription):
            await self._call_engine(
                cmd.attempt_id,
                "apply_remote_description",
                lambda engine: engine.apply_remote_description(cmd.description),
            )

        elif isinstance(cmd, AddRemoteCandidate):
            await self._call_engine(
                cmd.attempt_id,
                "add_remote_candidate",
                lambda engine: engine.add_remote_candidate(cmd.candidate),
            )

        elif isinstance(cmd, AttachMedia):
            await self._attach_media(cmd.handle)

        elif isinstance(cmd, DetachMedia):
            await self._deliver_media(None)

        else:
            log_event({
                "event_type": "UNKNOWN_COMMAND",
                "camera_id": self._camera_id,
                "command_type": getattr(cmd, "command_type", None),
            })

    # ------------------------------------------------------------------
    # Relay channel
    # ------------------------------------------------------------------

    def _open_channel(self, cmd: OpenChannel) -> None:
        cancel_timer(self._media_timer)
        self._media_timer = start_timer(METRIC_CONNECT_TO_MEDIA)
        self._channel_task = asyncio.create_task(
            self._run_channel(cmd.attempt_id, cmd.url)
        )

    async def _close_channel(self, cmd: CloseChannel) -> None:
        # Detach first so nothing new is routed to the old pair
        channel = self._channel
        task = self._channel_task
        self._channel = None
        self._channel_task = None

        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

        if channel is not None:
            await channel.close(cmd.code, cmd.reason)

        cancel_timer(self._media_timer)
        self._media_timer = None

    async def _run_channel(self, attempt_id: int, url: str) -> None:
        """
        Open the relay channel, then pump inbound messages into events.

        Ends on close, on transport failure, on cancellation, or when the
        channel is detached by a CloseChannel command.
        """
        try:
            channel = await self._channel_factory(url)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # pylint: disable=broad-exception-caught
            await self.handle_event(
                ChannelError(
                    event_type=EventType.CHANNEL_ERROR,
                    ts_ms=now_ms(),
                    attempt_id=attempt_id,
                    reason=str(e) if isinstance(e, ViewerError) else repr(e),
                )
            )
            return

        if attempt_id != self.state.attempt_id:
            # Superseded while the handshake was in flight
            await channel.close(RELAY_NORMAL_CLOSURE_CODE, "Superseded")
            return

        self._channel = channel
        await self.handle_event(
            ChannelOpened(
                event_type=EventType.CHANNEL_OPENED,
                ts_ms=now_ms(),
                attempt_id=attempt_id,
            )
        )

        while self._channel is channel:
            try:
                raw = await channel.receive()
            except asyncio.CancelledError:
                raise
            except RelayClosed as closed:
                await self.handle_event(
                    ChannelClosed(
                        event_type=EventType.CHANNEL_CLOSED,
                        ts_ms=now_ms(),
                        attempt_id=attempt_id,
                        code=closed.code,
                        reason=closed.reason,
                    )
                )
                break
            except Exception as e:  # pylint: disable=broad-exception-caught
                await self.handle_event(
                    ChannelError(
                        event_type=EventType.CHANNEL_ERROR,
                        ts_ms=now_ms(),
                        attempt_id=attempt_id,
                        reason=str(e) if isinstance(e, ViewerError) else repr(e),
                    )
                )
                break

            await self._dispatch_inbound(attempt_id, raw)

        if self._channel is channel:
            self._channel = None
            self._channel_task = None

    async def _dispatch_inbound(self, attempt_id: int, raw: str | bytes) -> None:
        try:
            message = decode_inbound(raw)
        except ParseError as e:
            preview = raw[:LOG_PAYLOAD_PREVIEW_CHARS]
            log_event({
                "event_type": "RELAY_MESSAGE_PARSE_ERROR",
                "camera_id": self._camera_id,
                "attempt_id": attempt_id,
                "error": str(e),
                "payload_preview": preview if isinstance(preview, str) else repr(preview),
            })
            await self.handle_event(
                ChannelParseError(
                    event_type=EventType.CHANNEL_PARSE_ERROR,
                    ts_ms=now_ms(),
                    attempt_id=attempt_id,
                    reason=str(e),
                )
            )
            return

        await self.handle_event(
            ChannelMessage(
                event_type=EventType.CHANNEL_MESSAGE,
                ts_ms=now_ms(),
                attempt_id=attempt_id,
                message=message,
            )
        )

    async def _send_signal(self, attempt_id: int, message: OutboundMessage) -> None:
        channel = self._channel
        if channel is None or attempt_id != self.state.attempt_id:
            log_event({
                "event_type": "SIGNAL_DROPPED_NO_CHANNEL",
                "camera_id": self._camera_id,
                "attempt_id": attempt_id,
            })
            return

        try:
            await channel.send(encode_outbound(message))
        except Exception as e:  # pylint: disable=broad-exception-caught
            await self.handle_event(
                ChannelError(
                    event_type=EventType.CHANNEL_ERROR,
                    ts_ms=now_ms(),
                    attempt_id=attempt_id,
                    reason=str(e) if isinstance(e, ViewerError) else repr(e),
                )
            )

    # ------------------------------------------------------------------
    # Negotiation
    # ------------------------------------------------------------------

    async def _start_negotiation(self, attempt_id: int) -> None:
        await self._stop_negotiation()

        try:
            engine = self._engine_factory(self._ice_servers)
        except Exception as e:  # pylint: disable=broad-exception-caught
            await self._negotiation_failed(attempt_id, e)
            return

        self._engine = engine
        engine.on_local_signal(lambda msg: self._on_local_signal(attempt_id, msg))
        engine.on_remote_track(lambda track: self._on_remote_track(attempt_id, track))
        engine.on_connection_state(lambda st: self._on_peer_state(attempt_id, st))

        await self._call_engine(attempt_id, "create_offer", lambda e: e.create_offer())

    async def _stop_negotiation(self) -> None:
        engine = self._engine
        self._engine = None
        if engine is None:
            return
        try:
            await engine.close()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "ENGINE_CLOSE_FAILED",
                "camera_id": self._camera_id,
                "error": repr(e),
            })

    async def _call_engine(
        self,
        attempt_id: int,
        step: str,
        call: Callable[[NegotiationEngine], Awaitable[None]],
    ) -> None:
        engine = self._engine
        if engine is None or attempt_id != self.state.attempt_id:
            log_event({
                "event_type": "ENGINE_STEP_DROPPED",
                "camera_id": self._camera_id,
                "attempt_id": attempt_id,
                "step": step,
            })
            return

        try:
            await call(engine)
        except Exception as e:  # pylint: disable=broad-exception-caught
            await self._negotiation_failed(attempt_id, e)

    async def _negotiation_failed(self, attempt_id: int, exc: Exception) -> None:
        await self.handle_event(
            NegotiationFailed(
                event_type=EventType.NEGOTIATION_FAILED,
                ts_ms=now_ms(),
                attempt_id=attempt_id,
                reason=str(exc) if isinstance(exc, ViewerError) else repr(exc),
            )
        )

    async def _on_local_signal(self, attempt_id: int, message: OutboundMessage) -> None:
        await self.handle_event(
            LocalSignal(
                event_type=EventType.LOCAL_SIGNAL,
                ts_ms=now_ms(),
                attempt_id=attempt_id,
                message=message,
            )
        )

    async def _on_remote_track(self, attempt_id: int, track: Any) -> None:
        await self.handle_event(
            RemoteTrack(
                event_type=EventType.REMOTE_TRACK,
                ts_ms=now_ms(),
                attempt_id=attempt_id,
                track=track,
            )
        )

    async def _on_peer_state(self, attempt_id: int, peer_state: str) -> None:
        if peer_state == "failed":
            await self.handle_event(
                NegotiationFailed(
                    event_type=EventType.NEGOTIATION_FAILED,
                    ts_ms=now_ms(),
                    attempt_id=attempt_id,
                    reason="peer connection failed",
                )
            )
        elif peer_state == "closed":
            await self.handle_event(
                PeerClosed(
                    event_type=EventType.PEER_CLOSED,
                    ts_ms=now_ms(),
                    attempt_id=attempt_id,
                )
            )
        else:
            log_event({
                "event_type": "PEER_STATE",
                "camera_id": self._camera_id,
                "attempt_id": attempt_id,
                "peer_state": peer_state,
            })

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    async def _attach_media(self, handle: MediaHandle) -> None:
        if self._media_timer is not None:
            stop_timer(
                self._media_timer,
                camera_id=self._camera_id,
                attempt_id=handle.attempt_id,
                details={"tracks": len(handle.tracks)},
            )
            self._media_timer = None
        await self._deliver_media(handle)

    async def _deliver_media(self, handle: MediaHandle | None) -> None:
        if self._media_sink is None:
            return
        try:
            await self._media_sink(handle)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "MEDIA_SINK_ERROR",
                "camera_id": self._camera_id,
                "attached": handle is not None,
                "error": repr(e),
            })
