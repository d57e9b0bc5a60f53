"""
WebSocket relay channel (websockets asyncio client).

Role in the system:
- Opens {server_url}/ws/viewer/{camera_id} as a text WebSocket.
- Exposes send / receive / close per the RelayChannel contract.
- Converts websockets exceptions into RelayClosed / TransportError.

Architectural constraints:
- No JSON decoding, no signaling decisions, no retries.
- Opening the socket is the only awaited step in open_websocket_channel().
"""

from __future__ import annotations

import asyncio

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from adapters.relay.base import RelayChannel, RelayClosed
from constants import RELAY_MAX_MESSAGE_BYTES
from observability.logger import log_event
from signaling.errors import TransportError

# Abnormal closure (no close frame received)
_CLOSE_CODE_ABNORMAL = 1006


def _close_details(exc: ConnectionClosed) -> tuple[int, str]:
    frame = exc.rcvd or exc.sent
    if frame is None:
        return _CLOSE_CODE_ABNORMAL, ""
    return frame.code, frame.reason


class WebSocketRelayChannel(RelayChannel):
    """RelayChannel over an open websockets ClientConnection."""

    def __init__(self, ws: ClientConnection, url: str) -> None:
        self._ws = ws
        self._url = url
        self._closed = False

    @property
    def url(self) -> str:
        return self._url

    async def send(self, text: str) -> None:
        try:
            await self._ws.send(text)
        except ConnectionClosed as e:
            code, reason = _close_details(e)
            raise TransportError(f"send on closed channel (code={code}, reason={reason!r})") from e
        except (WebSocketException, OSError) as e:
            raise TransportError(f"send failed: {e!r}") from e

    async def receive(self) -> str | bytes:
        try:
            return await self._ws.recv()
        except ConnectionClosed as e:
            code, reason = _close_details(e)
            raise RelayClosed(code=code, reason=reason) from e
        except (WebSocketException, OSError) as e:
            raise TransportError(f"receive failed: {e!r}") from e

    async def close(self, code: int, reason: str) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._ws.close(code=code, reason=reason)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "RELAY_CLOSE_FAILED",
                "url": self._url,
                "error": repr(e),
            })


async def open_websocket_channel(url: str) -> RelayChannel:
    """
    Open the relay WebSocket.

    Raises:
        TransportError if the connection or the upgrade handshake fails.
    """
    try:
        ws = await ws_connect(url, max_size=RELAY_MAX_MESSAGE_BYTES)
    except (WebSocketException, OSError, asyncio.TimeoutError) as e:
        raise TransportError(f"connect to {url} failed: {e!r}") from e

    return WebSocketRelayChannel(ws, url)
