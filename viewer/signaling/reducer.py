"""
Pure signaling reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (phase, event) pair is handled or explicitly ignored (logged).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from constants import (
    ERROR_CHANNEL,
    ERROR_NEGOTIATION,
    ERROR_PARSE,
    RELAY_NORMAL_CLOSURE_CODE,
    RELAY_USER_DISCONNECT_REASON,
)
from protocol.messages import (
    CameraInfo,
    IceCandidate,
    RelayError,
    SessionDescription,
    message_kind,
)
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
from signaling.enums.error_kind import ErrorKind
from signaling.enums.phase import Phase
from signaling.events import (
    AttemptEvent,
    ChannelClosed,
    ChannelError,
    ChannelMessage,
    ChannelOpened,
    ChannelParseError,
    CloseRequested,
    ConnectRequested,
    DisconnectRequested,
    Event,
    LocalSignal,
    NegotiationFailed,
    PeerClosed,
    RemoteTrack,
)
from signaling.state_dataclass import ConnectionState, MediaHandle


# Phases in which an attempt owns live resources
ACTIVE_PHASES: frozenset[Phase] = frozenset({Phase.CONNECTING, Phase.CONNECTED})

# Close reasons sent to the relay
CLOSE_REASON_RECONNECT = "Reconnect"
CLOSE_REASON_FAILED = "Signaling failed"
CLOSE_REASON_PEER_CLOSED = "Peer closed"
CLOSE_REASON_SESSION_CLOSED = "Session closed"


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: ConnectionState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "phase": state.phase.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "attempt_id": state.attempt_id,
            "channel_open": state.channel_open,
            "media_ready": state.media_ready,
            "details": details or {},
        }
    )


def _with_phase_log(
    old: ConnectionState,
    new: ConnectionState,
    event: Event,
    commands: list[Command],
    source: str,
) -> tuple[ConnectionState, tuple[Command, ...]]:
    """Append a state_changed log (last) when the phase moved."""
    if old.phase is not new.phase:
        commands.append(
            _log(
                new,
                event,
                "state_changed",
                {
                    "from_phase": old.phase.value,
                    "to_phase": new.phase.value,
                    "source": source,
                },
            )
        )
    return new, tuple(commands)


def _ignore(
    state: ConnectionState, event: Event, reason: str
) -> tuple[ConnectionState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _is_stale(state: ConnectionState, event: AttemptEvent) -> bool:
    return event.attempt_id != state.attempt_id


def _teardown(state: ConnectionState, *, close_code: int, close_reason: str) -> list[Command]:
    """Idempotent teardown of everything an attempt may own."""
    cmds: list[Command] = [StopNegotiation()]
    if state.media is not None:
        cmds.append(DetachMedia())
    cmds.append(CloseChannel(code=close_code, reason=close_reason))
    return cmds


def _fail(
    state: ConnectionState,
    event: Event,
    kind: ErrorKind,
    message: str,
) -> tuple[ConnectionState, tuple[Command, ...]]:
    """
    Enter FAILED: media cleared, engine and channel torn down.

    FAILED is terminal for the attempt; only a new connect() leaves it.
    """
    new_state = replace(
        state,
        phase=Phase.FAILED,
        loading=False,
        channel_open=False,
        media_ready=False,
        media=None,
        error=message,
        error_kind=kind,
    )
    cmds = _teardown(
        state,
        close_code=RELAY_NORMAL_CLOSURE_CODE,
        close_reason=CLOSE_REASON_FAILED,
    )
    cmds.append(_log(new_state, event, "enter_failed", {"kind": kind.value, "error": message}))
    return _with_phase_log(state, new_state, event, cmds, source=f"fail:{kind.value}")


# =============================================================================
# Caller control
# =============================================================================

def _on_connect(
    state: ConnectionState, event: ConnectRequested
) -> tuple[ConnectionState, tuple[Command, ...]]:
    if state.session_closed:
        return _ignore(state, event, "session_closed")

    if not event.camera_id:
        return _ignore(state, event, "missing_camera_id")

    # Only the relay handshake blocks a new attempt; once the channel is
    # open a stalled negotiation is superseded
    if state.phase is Phase.CONNECTING and not state.channel_open:
        return _ignore(state, event, "already_connecting")

    attempt_id = state.attempt_id + 1
    new_state = ConnectionState(
        phase=Phase.CONNECTING,
        loading=True,
        attempt_id=attempt_id,
    )

    # Prior resources go first: at most one channel/engine pair is live
    cmds = _teardown(
        state,
        close_code=RELAY_NORMAL_CLOSURE_CODE,
        close_reason=CLOSE_REASON_RECONNECT,
    )
    cmds.append(OpenChannel(attempt_id=attempt_id, url=event.url))
    cmds.append(_log(new_state, event, "open_channel", {"url": event.url}))
    return _with_phase_log(state, new_state, event, cmds, source="connect")


def _on_disconnect(
    state: ConnectionState, event: DisconnectRequested
) -> tuple[ConnectionState, tuple[Command, ...]]:
    phase = Phase.CLOSED if state.session_closed else Phase.DISCONNECTED
    new_state = replace(
        state,
        phase=phase,
        loading=False,
        channel_open=False,
        media_ready=False,
        media=None,
        error=None,
        error_kind=None,
    )
    cmds = _teardown(
        state,
        close_code=RELAY_NORMAL_CLOSURE_CODE,
        close_reason=RELAY_USER_DISCONNECT_REASON,
    )
    return _with_phase_log(state, new_state, event, cmds, source="disconnect")


def _on_close(
    state: ConnectionState, event: CloseRequested
) -> tuple[ConnectionState, tuple[Command, ...]]:
    new_state = replace(
        state,
        phase=Phase.CLOSED,
        loading=False,
        channel_open=False,
        media_ready=False,
        media=None,
        session_closed=True,
    )
    cmds = _teardown(
        state,
        close_code=RELAY_NORMAL_CLOSURE_CODE,
        close_reason=CLOSE_REASON_SESSION_CLOSED,
    )
    return _with_phase_log(state, new_state, event, cmds, source="close")


# =============================================================================
# Relay channel
# =============================================================================

def _on_channel_opened(
    state: ConnectionState, event: ChannelOpened
) -> tuple[ConnectionState, tuple[Command, ...]]:
    if state.phase is not Phase.CONNECTING or state.channel_open:
        return _ignore(state, event, "not_awaiting_channel")

    # Channel up is NOT connected; phase waits for media
    new_state = replace(state, channel_open=True)
    return new_state, (
        StartNegotiation(attempt_id=state.attempt_id),
        _log(new_state, event, "start_negotiation"),
    )


def _on_channel_message(
    state: ConnectionState, event: ChannelMessage
) -> tuple[ConnectionState, tuple[Command, ...]]:
    message = event.message
    kind = message_kind(message)

    if isinstance(message, CameraInfo):
        return state, (_log(state, event, "camera_info", {"camera": message.camera}),)

    if isinstance(message, SessionDescription):
        return state, (
            ApplyRemoteDescription(attempt_id=state.attempt_id, description=message),
            _log(state, event, "apply_remote_description", {"kind": kind}),
        )

    if isinstance(message, IceCandidate):
        return state, (
            AddRemoteCandidate(attempt_id=state.attempt_id, candidate=message),
            _log(
                state,
                event,
                "add_remote_candidate",
                {"sdp_mid": message.sdp_mid, "sdp_mline_index": message.sdp_mline_index},
            ),
        )

    if isinstance(message, RelayError):
        return _fail(state, event, ErrorKind.SIGNALING, message.message)

    return _ignore(state, event, "unknown_message_shape")


def _on_parse_error(
    state: ConnectionState, event: ChannelParseError
) -> tuple[ConnectionState, tuple[Command, ...]]:
    # Recoverable: phase is untouched
    new_state = replace(
        state,
        loading=False,
        error=ERROR_PARSE,
        error_kind=ErrorKind.PARSE,
    )
    return new_state, (_log(new_state, event, "parse_error", {"reason": event.reason}),)


def _on_channel_error(
    state: ConnectionState, event: ChannelError
) -> tuple[ConnectionState, tuple[Command, ...]]:
    return _fail(state, event, ErrorKind.TRANSPORT, f"{ERROR_CHANNEL}: {event.reason}")


def _on_channel_closed(
    state: ConnectionState, event: ChannelClosed
) -> tuple[ConnectionState, tuple[Command, ...]]:
    new_state = replace(
        state,
        phase=Phase.DISCONNECTED,
        loading=False,
        channel_open=False,
        media_ready=False,
        media=None,
    )
    cmds: list[Command] = [StopNegotiation()]
    if state.media is not None:
        cmds.append(DetachMedia())
    cmds.append(
        _log(new_state, event, "channel_closed", {"code": event.code, "reason": event.reason})
    )
    return _with_phase_log(state, new_state, event, cmds, source="channel_closed")


# =============================================================================
# Negotiation
# =============================================================================

def _on_local_signal(
    state: ConnectionState, event: LocalSignal
) -> tuple[ConnectionState, tuple[Command, ...]]:
    if not state.channel_open:
        return _ignore(state, event, "channel_not_open")

    return state, (
        SendSignal(attempt_id=state.attempt_id, message=event.message),
        _log(state, event, "send_signal", {"kind": message_kind(event.message)}),
    )


def _on_remote_track(
    state: ConnectionState, event: RemoteTrack
) -> tuple[ConnectionState, tuple[Command, ...]]:
    if not state.channel_open:
        return _ignore(state, event, "channel_not_open")

    handle = state.media or MediaHandle(attempt_id=state.attempt_id)
    handle = handle.with_track(event.track)

    new_state = replace(
        state,
        phase=Phase.CONNECTED,
        loading=False,
        media_ready=True,
        media=handle,
    )
    cmds: list[Command] = [
        AttachMedia(handle=handle),
        _log(
            new_state,
            event,
            "media_ready",
            {"kind": getattr(event.track, "kind", None), "tracks": len(handle.tracks)},
        ),
    ]
    return _with_phase_log(state, new_state, event, cmds, source="remote_track")


def _on_negotiation_failed(
    state: ConnectionState, event: NegotiationFailed
) -> tuple[ConnectionState, tuple[Command, ...]]:
    return _fail(state, event, ErrorKind.NEGOTIATION, f"{ERROR_NEGOTIATION}: {event.reason}")


def _on_peer_closed(
    state: ConnectionState, event: PeerClosed
) -> tuple[ConnectionState, tuple[Command, ...]]:
    new_state = replace(
        state,
        phase=Phase.CLOSED,
        loading=False,
        channel_open=False,
        media_ready=False,
        media=None,
    )
    cmds = _teardown(
        state,
        close_code=RELAY_NORMAL_CLOSURE_CODE,
        close_reason=CLOSE_REASON_PEER_CLOSED,
    )
    return _with_phase_log(state, new_state, event, cmds, source="peer_closed")


# =============================================================================
# Reducer
# =============================================================================

def reduce(
    state: ConnectionState, event: Event
) -> tuple[ConnectionState, tuple[Command, ...]]:
    """
    Pure reducer for the signaling state machine.

    Given the current connection state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (phase, event) pair is handled or explicitly ignored
    - Attempt-safe: ignores events from torn-down attempts
    """
    if isinstance(event, ConnectRequested):
        return _on_connect(state, event)

    if isinstance(event, DisconnectRequested):
        return _on_disconnect(state, event)

    if isinstance(event, CloseRequested):
        return _on_close(state, event)

    if not isinstance(event, AttemptEvent):
        return _ignore(state, event, "unhandled_event")

    # ------------------------------------------------------------------
    # Attempt gating
    # ------------------------------------------------------------------
    if _is_stale(state, event):
        return _ignore(state, event, f"stale_attempt:{event.attempt_id}")

    if state.phase not in ACTIVE_PHASES:
        return _ignore(state, event, f"inactive_phase:{state.phase.value}")

    if isinstance(event, ChannelOpened):
        return _on_channel_opened(state, event)

    if isinstance(event, ChannelMessage):
        return _on_channel_message(state, event)

    if isinstance(event, ChannelParseError):
        return _on_parse_error(state, event)

    if isinstance(event, ChannelError):
        return _on_channel_error(state, event)

    if isinstance(event, ChannelClosed):
        return _on_channel_closed(state, event)

    if isinstance(event, LocalSignal):
        return _on_local_signal(state, event)

    if isinstance(event, RemoteTrack):
        return _on_remote_track(state, event)

    if isinstance(event, NegotiationFailed):
        return _on_negotiation_failed(state, event)

    if isinstance(event, PeerClosed):
        return _on_peer_closed(state, event)

    return _ignore(state, event, "unhandled_event")
