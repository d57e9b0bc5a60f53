"""
Connection phase enumeration.

Rules:
- This enum defines ONLY the lifecycle phases exposed to consumers.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the signaling reducer.
"""

from __future__ import annotations

from enum import Enum


class Phase(str, Enum):
    """
    Discrete connection lifecycle of one SignalingSession.

    CONNECTED means the relay channel is open AND inbound media is live.
    An open channel still negotiating is reported as CONNECTING.
    """

    NEW = "new"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CLOSED = "closed"
