"""
CONSTANTS
---------
Single source of truth for all behavioral invariants of the viewer.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Relay Channel
# =============================================================================

# Joined onto the relay base address (ws:// or wss://)
RELAY_VIEWER_PATH_TEMPLATE: Final[str] = "/ws/viewer/{camera_id}"

RELAY_NORMAL_CLOSURE_CODE: Final[int] = 1000
RELAY_USER_DISCONNECT_REASON: Final[str] = "User disconnect"

# Upper bound for a single inbound signaling message (SDP blobs are small)
RELAY_MAX_MESSAGE_BYTES: Final[int] = 2**20

DEFAULT_RELAY_SERVER_URL: Final[str] = "ws://localhost:8000"

# =============================================================================
# ICE
# =============================================================================

# Two independent public STUN endpoints for resolution redundancy
DEFAULT_STUN_SERVERS: Final[Tuple[str, ...]] = (
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
)

# Inbound media kinds the viewer always solicits from the camera
RECV_MEDIA_KINDS: Final[Tuple[str, ...]] = ("video", "audio")

# =============================================================================
# Reconnection  (exponential backoff, no jitter)
# =============================================================================

RECONNECT_MAX_ATTEMPTS: Final[int] = 5
RECONNECT_INITIAL_DELAY_MS: Final[int] = 2_000
RECONNECT_MAX_DELAY_MS: Final[int] = 30_000

# =============================================================================
# User-facing error strings
# =============================================================================

ERROR_PARSE: Final[str] = "Failed to parse relay message"
ERROR_CHANNEL: Final[str] = "Relay channel error"
ERROR_NEGOTIATION: Final[str] = "Media negotiation failed"

# =============================================================================
# Observability
# =============================================================================

METRIC_CONNECT_TO_MEDIA: Final[str] = "connect_to_media_ms"

# Inbound payload previews in logs are clipped to this many characters
LOG_PAYLOAD_PREVIEW_CHARS: Final[int] = 100

# =============================================================================
# Local status surface
# =============================================================================

DEFAULT_STATUS_HOST: Final[str] = "127.0.0.1"
DEFAULT_STATUS_PORT: Final[int] = 8080
