"""
Side-effect command definitions for the signaling runtime.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by SignalingSession.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Teardown commands are idempotent: executing them with nothing
      to tear down is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from protocol.messages import IceCandidate, OutboundMessage, SessionDescription
from signaling.state_dataclass import MediaHandle


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    Stable discriminants used for logging and runtime dispatch.
    """

    # Relay channel
    OPEN_CHANNEL = "OPEN_CHANNEL"
    CLOSE_CHANNEL = "CLOSE_CHANNEL"
    SEND_SIGNAL = "SEND_SIGNAL"

    # Negotiation
    START_NEGOTIATION = "START_NEGOTIATION"
    STOP_NEGOTIATION = "STOP_NEGOTIATION"
    APPLY_REMOTE_DESCRIPTION = "APPLY_REMOTE_DESCRIPTION"
    ADD_REMOTE_CANDIDATE = "ADD_REMOTE_CANDIDATE"

    # Media
    ATTACH_MEDIA = "ATTACH_MEDIA"
    DETACH_MEDIA = "DETACH_MEDIA"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Relay Channel Commands
# =============================================================================

@dataclass(frozen=True)
class OpenChannel(Command):
    """Open the relay channel for a new attempt."""
    attempt_id: int
    url: str
    command_type: CommandType = CommandType.OPEN_CHANNEL


@dataclass(frozen=True)
class CloseChannel(Command):
    """Close the current relay channel, if any."""
    code: int
    reason: str
    command_type: CommandType = CommandType.CLOSE_CHANNEL


@dataclass(frozen=True)
class SendSignal(Command):
    """Serialize and send one outbound signaling message."""
    attempt_id: int
    message: OutboundMessage
    command_type: CommandType = CommandType.SEND_SIGNAL


# =============================================================================
# Negotiation Commands
# =============================================================================

@dataclass(frozen=True)
class StartNegotiation(Command):
    """
    Create the negotiation engine as the offering side and start the offer.

    Non-trickle; receive-only audio and video are always solicited.
    """
    attempt_id: int
    command_type: CommandType = CommandType.START_NEGOTIATION


@dataclass(frozen=True)
class StopNegotiation(Command):
    """Tear down the current negotiation engine, if any."""
    command_type: CommandType = CommandType.STOP_NEGOTIATION


@dataclass(frozen=True)
class ApplyRemoteDescription(Command):
    """Feed a remote offer/answer to the engine."""
    attempt_id: int
    description: SessionDescription
    command_type: CommandType = CommandType.APPLY_REMOTE_DESCRIPTION


@dataclass(frozen=True)
class AddRemoteCandidate(Command):
    """Feed a remote ICE candidate to the engine."""
    attempt_id: int
    candidate: IceCandidate
    command_type: CommandType = CommandType.ADD_REMOTE_CANDIDATE


# =============================================================================
# Media Commands
# =============================================================================

@dataclass(frozen=True)
class AttachMedia(Command):
    """Hand the (possibly extended) media handle to the renderer."""
    handle: MediaHandle
    command_type: CommandType = CommandType.ATTACH_MEDIA


@dataclass(frozen=True)
class DetachMedia(Command):
    """Tell the renderer the media handle is gone."""
    command_type: CommandType = CommandType.DETACH_MEDIA


# =============================================================================
# Observability
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
