"""
Failure classification for the signaling layer.

Rules:
- Describes *where* a failure came from, never what to do about it.
- Retry eligibility is decided by the phase the reducer assigns,
  not by this enum.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """
    TRANSPORT:
        Relay channel could not be opened, errored, or died mid-session.
        Sets phase FAILED (reconnect eligible).

    PARSE:
        An inbound relay message was not valid JSON / not an object.
        Phase unchanged, session stays alive (not a reconnect trigger).

    SIGNALING:
        The relay sent an explicit {"error": ...} message.
        Sets phase FAILED (reconnect eligible).

    NEGOTIATION:
        The local negotiation engine failed (offer, remote description,
        candidate, or ICE failure). Treated like TRANSPORT.
    """

    TRANSPORT = "transport"
    PARSE = "parse"
    SIGNALING = "signaling"
    NEGOTIATION = "negotiation"
