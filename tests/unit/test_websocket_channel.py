# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any

import pytest
from websockets.asyncio.server import ServerConnection, serve

from adapters.relay.base import RelayClosed
from adapters.relay.websocket_channel import open_websocket_channel
from observability import logger
from signaling.errors import TransportError


@pytest.fixture(autouse=True)
def _quiet_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(logger, "_print", lambda line: None)


def test_channel_exchanges_text_then_reports_close_frame() -> None:
    paths: list[str] = []

    async def relay(ws: ServerConnection) -> None:
        paths.append(ws.request.path)
        message = await ws.recv()
        await ws.send(f"echo:{message}")
        await ws.close(code=4000, reason="bye")

    async def scenario() -> dict[str, Any]:
        async with serve(relay, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            channel = await open_websocket_channel(f"ws://127.0.0.1:{port}/ws/viewer/cam-1")

            await channel.send('{"sdp": {}}')
            reply = await channel.receive()
            with pytest.raises(RelayClosed) as closed:
                await channel.receive()

            await channel.close(1000, "User disconnect")
            await channel.close(1000, "User disconnect")

        return {"reply": reply, "code": closed.value.code, "reason": closed.value.reason}

    result = asyncio.run(scenario())

    assert paths == ["/ws/viewer/cam-1"]
    assert result == {"reply": 'echo:{"sdp": {}}', "code": 4000, "reason": "bye"}


def test_send_after_remote_close_is_a_transport_error() -> None:
    async def relay(ws: ServerConnection) -> None:
        await ws.close(code=1000, reason="done")

    async def scenario() -> None:
        async with serve(relay, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            channel = await open_websocket_channel(f"ws://127.0.0.1:{port}/ws/viewer/cam-1")
            with pytest.raises(RelayClosed):
                await channel.receive()
            try:
                await channel.send("late")
            finally:
                await channel.close(1000, "User disconnect")

    with pytest.raises(TransportError):
        asyncio.run(scenario())


def test_refused_connection_is_a_transport_error() -> None:
    async def relay(ws: ServerConnection) -> None:
        await ws.close()

    async def scenario() -> None:
        async with serve(relay, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
        # The listener is gone once the context exits
        await open_websocket_channel(f"ws://127.0.0.1:{port}/ws/viewer/cam-1")

    with pytest.raises(TransportError, match="connect to"):
        asyncio.run(scenario())
