"""
Authoritative connection state container.

Rules:
- These dataclasses are pure data models.
- ConnectionState is replaced, never mutated; each published value is a snapshot.
- The only derived value is `connected`, computed from the orthogonal
  channel_open / media_ready flags.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from signaling.enums.error_kind import ErrorKind
from signaling.enums.phase import Phase


# =============================================================================
# Media
# =============================================================================

@dataclass(frozen=True)
class MediaHandle:
    """
    Renderable handle on the inbound media of one attempt.

    Holds the remote tracks received so far (aiortc MediaStreamTrack in
    production, any object with `kind` / `id` in tests).
    """
    attempt_id: int
    tracks: tuple[Any, ...] = ()

    def with_track(self, track: Any) -> MediaHandle:
        """Return a handle that also carries `track`."""
        return MediaHandle(attempt_id=self.attempt_id, tracks=self.tracks + (track,))

    @property
    def video(self) -> Any | None:
        """First inbound video track, if any."""
        return next((t for t in self.tracks if getattr(t, "kind", None) == "video"), None)

    @property
    def audio(self) -> Any | None:
        """First inbound audio track, if any."""
        return next((t for t in self.tracks if getattr(t, "kind", None) == "audio"), None)

    def describe(self) -> list[dict[str, Any]]:
        """JSON-safe description of the tracks."""
        return [
            {"kind": getattr(t, "kind", None), "id": getattr(t, "id", None)}
            for t in self.tracks
        ]


# =============================================================================
# Connection State
# =============================================================================

@dataclass(frozen=True)
class ConnectionState:
    """Immutable snapshot of one SignalingSession."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    phase: Phase = Phase.NEW
    loading: bool = False

    # Monotonic per connect(); events from older attempts are stale.
    # 0 means "connect() never ran".
    attempt_id: int = 0

    # ------------------------------------------------------------------
    # Orthogonal layers
    # ------------------------------------------------------------------
    # Relay (signaling transport) is open
    channel_open: bool = False
    # Negotiation produced at least one live inbound track
    media_ready: bool = False

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------
    media: MediaHandle | None = None

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    error: str | None = None
    error_kind: ErrorKind | None = None

    # ------------------------------------------------------------------
    # Terminal flag (close() was called)
    # ------------------------------------------------------------------
    session_closed: bool = False

    @property
    def connected(self) -> bool:
        """Relay open AND media flowing."""
        return (
            self.phase is Phase.CONNECTED
            and self.channel_open
            and self.media_ready
            and self.media is not None
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe view used by logs and the status surface."""
        return {
            "phase": self.phase.value,
            "connected": self.connected,
            "loading": self.loading,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "channel_open": self.channel_open,
            "media_ready": self.media_ready,
            "attempt_id": self.attempt_id,
            "tracks": self.media.describe() if self.media else [],
        }
