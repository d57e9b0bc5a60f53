"""
Exception taxonomy for the viewer.

Adapters raise these; SignalingSession catches them at the runtime
boundary and converts them into events. The event, not the exception,
decides the ErrorKind recorded in ConnectionState. None of them ever
escape connect() / disconnect() / close().
"""

from __future__ import annotations


class ViewerError(Exception):
    """Base class for all viewer errors."""


class TransportError(ViewerError):
    """
    Relay channel failure: open refused, handshake rejected, send failed,
    or the receive loop died for a reason other than a close frame.
    """


class ParseError(ViewerError):
    """
    Inbound relay message could not be decoded.

    The message is dropped; the session remains usable.
    """


class SignalingProtocolError(ViewerError):
    """
    Signaling protocol violation: the relay reported an error
    ({"error": "..."}) or an outbound message has no wire shape.
    """


class NegotiationError(ViewerError):
    """Local negotiation engine failure (offer, description, candidate, ICE)."""
