"""
Negotiation engine contract.

This module defines the *interface* the signaling runtime drives. The
state machine never touches a peer connection directly, so the engine
is swappable (aiortc in production, fakes in tests).

Key invariants:
- The viewer is always the offering side.
- Trickle is off: the local description is emitted once, after ICE
  gathering, with candidates embedded. on_local_signal may still carry
  standalone candidates for engines that produce them.
- After close(), no callback fires again.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Sequence

from protocol.messages import IceCandidate, OutboundMessage, SessionDescription


LocalSignalCallback = Callable[[OutboundMessage], Awaitable[None]]
RemoteTrackCallback = Callable[[Any], Awaitable[None]]
ConnectionStateCallback = Callable[[str], Awaitable[None]]


async def _noop(_: Any) -> None:
    return None


class NegotiationEngine(ABC):
    """
    Abstract media-negotiation engine.

    Note: all callbacks must be async.

    Implementations are responsible for:
    - Building the offer (recv-only audio + video) and emitting it
    - Applying remote descriptions and candidates
    - Reporting inbound tracks and peer connection state changes

    Non-responsibilities:
    - No relay channel I/O
    - No retries, no timers
    - No phase decisions
    """

    def __init__(self) -> None:
        self._local_signal_cb: LocalSignalCallback = _noop
        self._remote_track_cb: RemoteTrackCallback = _noop
        self._connection_state_cb: ConnectionStateCallback = _noop
        self._closed = False

    # ------------------------------------------------------------------
    # Callback registration
    # ------------------------------------------------------------------

    def on_local_signal(self, callback: LocalSignalCallback) -> None:
        """Local description or candidate ready to send to the remote."""
        self._local_signal_cb = callback

    def on_remote_track(self, callback: RemoteTrackCallback) -> None:
        """Live inbound media track arrived."""
        self._remote_track_cb = callback

    def on_connection_state(self, callback: ConnectionStateCallback) -> None:
        """Peer connection state changed (e.g. "connected", "failed", "closed")."""
        self._connection_state_cb = callback

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Emission helpers for subclasses
    # ------------------------------------------------------------------

    async def _emit_local_signal(self, message: OutboundMessage) -> None:
        if not self._closed:
            await self._local_signal_cb(message)

    async def _emit_remote_track(self, track: Any) -> None:
        if not self._closed:
            await self._remote_track_cb(track)

    async def _emit_connection_state(self, state: str) -> None:
        if not self._closed:
            await self._connection_state_cb(state)

    # ------------------------------------------------------------------
    # Negotiation steps
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_offer(self) -> None:
        """
        Create the local offer and emit it via on_local_signal.

        Raises:
            NegotiationError on failure.
        """
        raise NotImplementedError

    @abstractmethod
    async def apply_remote_description(self, description: SessionDescription) -> None:
        """
        Apply the remote answer (or offer, answering it).

        Raises:
            NegotiationError on failure.
        """
        raise NotImplementedError

    @abstractmethod
    async def add_remote_candidate(self, candidate: IceCandidate) -> None:
        """
        Add one remote ICE candidate.

        Raises:
            NegotiationError on failure.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Tear down the engine.

        Contract:
        - MUST be idempotent.
        - MUST NOT raise.
        - Silences every callback before returning.
        """
        raise NotImplementedError


EngineFactory = Callable[[Sequence[str]], NegotiationEngine]
