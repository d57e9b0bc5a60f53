"""
Event definitions for the signaling reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Events produced by a relay channel or negotiation engine carry the
attempt_id they belong to, for stale gating.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from protocol.messages import InboundMessage, OutboundMessage


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (phase, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Caller control
    # ------------------------------------------------------------------
    CONNECT_REQUESTED = "CONNECT_REQUESTED"
    DISCONNECT_REQUESTED = "DISCONNECT_REQUESTED"
    CLOSE_REQUESTED = "CLOSE_REQUESTED"

    # ------------------------------------------------------------------
    # Relay channel
    # ------------------------------------------------------------------
    CHANNEL_OPENED = "CHANNEL_OPENED"
    CHANNEL_MESSAGE = "CHANNEL_MESSAGE"
    CHANNEL_PARSE_ERROR = "CHANNEL_PARSE_ERROR"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    CHANNEL_CLOSED = "CHANNEL_CLOSED"

    # ------------------------------------------------------------------
    # Negotiation engine
    # ------------------------------------------------------------------
    LOCAL_SIGNAL = "LOCAL_SIGNAL"
    REMOTE_TRACK = "REMOTE_TRACK"
    NEGOTIATION_FAILED = "NEGOTIATION_FAILED"
    PEER_CLOSED = "PEER_CLOSED"


# =============================================================================
# Base Events
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class AttemptEvent(Event):
    """
    Base class for events scoped to one connection attempt.

    The reducer MUST ignore events whose attempt_id does not match the
    current attempt.
    """

    attempt_id: int


# =============================================================================
# Caller Control Events
# =============================================================================

@dataclass(frozen=True)
class ConnectRequested(Event):
    """connect() was called."""
    camera_id: str
    url: str


@dataclass(frozen=True)
class DisconnectRequested(Event):
    """disconnect() was called."""


@dataclass(frozen=True)
class CloseRequested(Event):
    """close() was called; the session's scope ends."""


# =============================================================================
# Relay Channel Events
# =============================================================================

@dataclass(frozen=True)
class ChannelOpened(AttemptEvent):
    """Relay channel handshake completed."""


@dataclass(frozen=True)
class ChannelMessage(AttemptEvent):
    """A well-formed inbound relay message."""
    message: InboundMessage


@dataclass(frozen=True)
class ChannelParseError(AttemptEvent):
    """An inbound relay message could not be decoded."""
    reason: str


@dataclass(frozen=True)
class ChannelError(AttemptEvent):
    """Relay channel failed to open, send, or receive."""
    reason: str


@dataclass(frozen=True)
class ChannelClosed(AttemptEvent):
    """Relay channel closed (any close code)."""
    code: int | None = None
    reason: str | None = None


# =============================================================================
# Negotiation Events
# =============================================================================

@dataclass(frozen=True)
class LocalSignal(AttemptEvent):
    """Negotiation produced a local description or candidate to send."""
    message: OutboundMessage


@dataclass(frozen=True)
class RemoteTrack(AttemptEvent):
    """A live inbound media track arrived."""
    track: Any


@dataclass(frozen=True)
class NegotiationFailed(AttemptEvent):
    """Local negotiation setup or ICE failed."""
    reason: str


@dataclass(frozen=True)
class PeerClosed(AttemptEvent):
    """The peer connection reported it was closed by the remote side."""
