"""
Route registration for the viewer status API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Forward user triggers to the gateway
- Push a status frame for every state snapshot
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from observability.logger import log_event
from session.gateway import ViewerGateway
from signaling.state_dataclass import ConnectionState


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def _gateway() -> ViewerGateway:
        return app.state.gateway

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/state")
    async def state() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return _gateway().status()

    @app.post("/connect")
    async def connect() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        gateway = _gateway()
        await gateway.manual_connect()
        return gateway.status()

    @app.post("/disconnect")
    async def disconnect() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        gateway = _gateway()
        await gateway.disconnect()
        return gateway.status()

    @app.websocket("/ws/state")
    async def state_stream(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway = _gateway()
        queue: asyncio.Queue[ConnectionState] = asyncio.Queue(maxsize=1)
        unsubscribe = gateway.session.stream.subscribe(
            lambda snapshot: offer_latest(queue, snapshot)
        )

        async def push_snapshots() -> None:
            while True:
                snapshot = await queue.get()
                await ws.send_json(gateway.status(snapshot))

        pusher: asyncio.Task[None] | None = None
        try:
            await ws.send_json(gateway.status())
            pusher = asyncio.create_task(push_snapshots())

            # Inbound frames are ignored; receiving only detects the close
            while True:
                await ws.receive_text()

        except WebSocketDisconnect:
            pass

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "STATE_WS_FATAL_ERROR",
                "exception": type(exc).__name__,
                "message": str(exc),
            })

        finally:
            unsubscribe()
            if pusher is not None:
                await _stop_pusher(pusher)


def offer_latest(queue: asyncio.Queue[ConnectionState], snapshot: ConnectionState) -> None:
    """Enqueue `snapshot`, dropping an unsent older one: the latest state wins."""
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(snapshot)


async def _stop_pusher(pusher: asyncio.Task[None]) -> None:
    pusher.cancel()
    try:
        await pusher
    except asyncio.CancelledError:
        pass
    except Exception as exc:  # pylint: disable=broad-exception-caught
        log_event({
            "event_type": "STATE_WS_PUSH_FAILED",
            "exception": type(exc).__name__,
            "message": str(exc),
        })
