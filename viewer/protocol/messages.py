# viewer/protocol/messages.py
"""
JSON message codec for the relay channel.

Every message is one JSON object; the shapes are mutually exclusive:

    session description  {"sdp": {"type": "offer"|"answer", "sdp": "<sdp>"}}     both ways
    ICE candidate        {"candidate": {"candidate": "<a=...>",
                                        "sdpMid": "0"|null,
                                        "sdpMLineIndex": 0}}                      both ways
    camera metadata      {"type": "camera_info", "camera": {...}}                 inbound
    error                {"error": "camera offline"}                              inbound

Inbound candidates are also accepted in the flat form
{"candidate": "<a=...>", "sdpMid": ..., "sdpMLineIndex": 0}. A candidate is
identified by the *presence* of both fields; sdpMLineIndex == 0 is valid.

Usage example:

    msg = decode_inbound(raw)
    if isinstance(msg, SessionDescription):
        await engine.apply_remote_description(msg)

    await channel.send(encode_outbound(local_description))
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from signaling.errors import ParseError, SignalingProtocolError


# -------------------------
# Message types
# -------------------------

DESCRIPTION_TYPES: frozenset[str] = frozenset({"offer", "answer"})


@dataclass(frozen=True)
class SessionDescription:
    """Offer or answer exchanged during negotiation."""
    type: str
    sdp: str


@dataclass(frozen=True)
class IceCandidate:
    """One connectivity candidate (the SDP `candidate:` attribute value)."""
    candidate: str
    sdp_mid: str | None
    sdp_mline_index: int


@dataclass(frozen=True)
class CameraInfo:
    """Informational camera metadata; logged, never acted on."""
    camera: Any


@dataclass(frozen=True)
class RelayError:
    """Explicit error reported by the relay."""
    message: str


@dataclass(frozen=True)
class UnknownMessage:
    """Any other well-formed object. Ignored for forward compatibility."""
    data: dict[str, Any] = field(default_factory=dict)


InboundMessage = Union[SessionDescription, IceCandidate, CameraInfo, RelayError, UnknownMessage]
OutboundMessage = Union[SessionDescription, IceCandidate]


# -------------------------
# Field helpers
# -------------------------

def _parse_description(raw: Any) -> SessionDescription:
    if not isinstance(raw, dict):
        raise ParseError("sdp payload must be an object")

    desc_type = raw.get("type")
    sdp = raw.get("sdp")
    if desc_type not in DESCRIPTION_TYPES:
        raise ParseError(f"unsupported description type: {desc_type!r}")
    if not isinstance(sdp, str):
        raise ParseError("sdp payload is missing the sdp string")

    return SessionDescription(type=desc_type, sdp=sdp)


def _parse_candidate(fields: dict[str, Any]) -> IceCandidate:
    candidate = fields.get("candidate")
    index = fields.get("sdpMLineIndex")
    mid = fields.get("sdpMid")

    if not isinstance(candidate, str):
        raise ParseError("candidate must be a string")
    # bool is an int subclass; reject it explicitly
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise ParseError(f"invalid sdpMLineIndex: {index!r}")
    if mid is not None and not isinstance(mid, str):
        mid = str(mid)

    return IceCandidate(candidate=candidate, sdp_mid=mid, sdp_mline_index=index)


def _candidate_fields(data: dict[str, Any]) -> dict[str, Any] | None:
    """
    Locate candidate fields in either the nested or the flat shape.

    Returns None when the message is not a candidate message.
    Presence checks only; a falsy sdpMLineIndex (0) still counts.
    """
    nested = data.get("candidate")
    if isinstance(nested, dict):
        if "candidate" in nested and nested.get("sdpMLineIndex") is not None:
            return nested
        return None

    if "candidate" in data and data.get("sdpMLineIndex") is not None:
        return data

    return None


# -------------------------
# Public API
# -------------------------

def decode_inbound(raw: str | bytes) -> InboundMessage:
    """
    Decode one relay message.

    Dispatch order: camera_info, session description, candidate, error,
    anything else.

    Raises:
        ParseError: not JSON, not an object, or a recognised shape with
        malformed fields.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ParseError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(f"expected a JSON object, got {type(data).__name__}")

    if data.get("type") == "camera_info":
        return CameraInfo(camera=data.get("camera"))

    if data.get("sdp") is not None:
        return _parse_description(data["sdp"])

    fields = _candidate_fields(data)
    if fields is not None:
        return _parse_candidate(fields)

    if data.get("error"):
        return RelayError(message=str(data["error"]))

    return UnknownMessage(data=data)


def encode_outbound(message: OutboundMessage) -> str:
    """
    Serialize a local description or candidate.

    Exactly one of "sdp" / "candidate" is present in the result.
    """
    if isinstance(message, SessionDescription):
        body: dict[str, Any] = {
            "sdp": {
                "type": message.type,
                "sdp": message.sdp,
            }
        }
    elif isinstance(message, IceCandidate):
        body = {
            "candidate": {
                "candidate": message.candidate,
                "sdpMid": message.sdp_mid,
                "sdpMLineIndex": message.sdp_mline_index,
            }
        }
    else:
        raise SignalingProtocolError(f"cannot encode {type(message).__name__}")

    return json.dumps(body, separators=(",", ":"))


def message_kind(message: InboundMessage) -> str:
    """Short label for logs."""
    if isinstance(message, SessionDescription):
        return f"sdp:{message.type}"
    if isinstance(message, IceCandidate):
        return "candidate"
    if isinstance(message, CameraInfo):
        return "camera_info"
    if isinstance(message, RelayError):
        return "error"
    return "unknown"
