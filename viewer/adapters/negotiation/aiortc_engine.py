"""
aiortc negotiation engine.

Role in the system:
- Owns one RTCPeerConnection per connection attempt.
- Offers with recv-only audio and video transceivers so the camera is
  asked for both media kinds even though the viewer sends nothing.
- Non-trickle: aiortc's setLocalDescription() finishes ICE gathering,
  so the emitted description already carries every local candidate.
- Reports inbound tracks and peer connection state via callbacks.

Architectural constraints:
- No relay I/O, no phase decisions, no retries.
"""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp

from adapters.negotiation.base import NegotiationEngine
from constants import DEFAULT_STUN_SERVERS, RECV_MEDIA_KINDS
from observability.logger import log_event
from protocol.messages import IceCandidate, SessionDescription
from signaling.errors import NegotiationError

_CANDIDATE_PREFIX = "candidate:"


class AiortcNegotiationEngine(NegotiationEngine):
    """
    Offer-side aiortc engine.

    Design:
    - Transceivers are added at construction, before the offer exists
    - Track and state callbacks are scheduled as tasks (aiortc emits
      them from inside its own coroutines)
    """

    def __init__(self, ice_servers: Sequence[str] = DEFAULT_STUN_SERVERS) -> None:
        super().__init__()
        config = RTCConfiguration(
            iceServers=[RTCIceServer(urls=url) for url in ice_servers]
        )
        self._pc = RTCPeerConnection(configuration=config)
        self._tasks: set[asyncio.Task[None]] = set()

        for kind in RECV_MEDIA_KINDS:
            self._pc.addTransceiver(kind, direction="recvonly")

        @self._pc.on("track")
        def on_track(track: Any) -> None:  # pyright: ignore[reportUnusedFunction]
            self._spawn(self._emit_remote_track(track))

        @self._pc.on("connectionstatechange")
        async def on_state_change() -> None:  # pyright: ignore[reportUnusedFunction]
            await self._emit_connection_state(self._pc.connectionState)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _emit_local_description(self) -> None:
        desc = self._pc.localDescription
        await self._emit_local_signal(SessionDescription(type=desc.type, sdp=desc.sdp))

    # ------------------------------------------------------------------
    # NegotiationEngine
    # ------------------------------------------------------------------

    async def create_offer(self) -> None:
        try:
            offer = await self._pc.createOffer()
            await self._pc.setLocalDescription(offer)
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise NegotiationError(f"create offer failed: {e!r}") from e

        await self._emit_local_description()

    async def apply_remote_description(self, description: SessionDescription) -> None:
        try:
            await self._pc.setRemoteDescription(
                RTCSessionDescription(sdp=description.sdp, type=description.type)
            )
            if description.type == "offer":
                # Remote re-offer: answer it with the same transceivers
                answer = await self._pc.createAnswer()
                await self._pc.setLocalDescription(answer)
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise NegotiationError(f"remote {description.type} rejected: {e!r}") from e

        if description.type == "offer":
            await self._emit_local_description()

    async def add_remote_candidate(self, candidate: IceCandidate) -> None:
        sdp = candidate.candidate
        if sdp.startswith(_CANDIDATE_PREFIX):
            sdp = sdp[len(_CANDIDATE_PREFIX):]

        if not sdp:
            # End-of-candidates marker; aiortc has nothing to add
            return

        try:
            rtc_candidate = candidate_from_sdp(sdp)
            rtc_candidate.sdpMid = candidate.sdp_mid
            rtc_candidate.sdpMLineIndex = candidate.sdp_mline_index
            await self._pc.addIceCandidate(rtc_candidate)
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise NegotiationError(f"remote candidate rejected: {e!r}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        for task in tuple(self._tasks):
            task.cancel()
        self._tasks.clear()

        try:
            await self._pc.close()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "PEER_CONNECTION_CLOSE_FAILED",
                "error": repr(e),
            })


def build_aiortc_engine(ice_servers: Sequence[str]) -> NegotiationEngine:
    """Default EngineFactory."""
    return AiortcNegotiationEngine(ice_servers)
