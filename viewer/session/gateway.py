"""
Viewer gateway.

Responsibilities:
- Owns the SignalingSession, ReconnectionSupervisor and media sink of
  one camera
- Implements the user-facing triggers (manual connect, disconnect)
- Renders the status JSON and banner consumed by the status API

Still NOT responsible for:
- Any state machine logic
- Retry policy
- HTTP / WebSocket framing
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from media.sink import TrackSink
from observability.logger import log_event
from reconnect.supervisor import ReconnectionSupervisor
from signaling.runtime import MediaSink, SignalingSession
from signaling.state_dataclass import ConnectionState

if TYPE_CHECKING:
    from config import AppConfig


# ------------------------------------------------------------------
# Banner
# ------------------------------------------------------------------

def status_banner(
    state: ConnectionState,
    supervisor: ReconnectionSupervisor | None,
) -> str | None:
    """
    User-visible status line.

    Last error, followed by the retry progress while the budget is in
    use, or the manual-reconnect hint once it is exhausted.
    """
    parts: list[str] = []
    if state.error:
        parts.append(state.error)

    if supervisor is not None and not state.connected:
        max_attempts = supervisor.config.max_attempts
        if supervisor.exhausted:
            parts.append(
                f"Reconnect attempts exhausted ({max_attempts}/{max_attempts}); "
                "trigger a manual reconnect"
            )
        elif supervisor.is_reconnecting:
            parts.append(f"Reconnecting ({supervisor.attempts}/{max_attempts})")

    return " - ".join(parts) if parts else None


def reconnect_status(supervisor: ReconnectionSupervisor | None) -> dict[str, Any]:
    if supervisor is None:
        return {
            "attempts": 0,
            "max_attempts": 0,
            "is_reconnecting": False,
            "exhausted": False,
        }
    return {
        "attempts": supervisor.attempts,
        "max_attempts": supervisor.config.max_attempts,
        "is_reconnecting": supervisor.is_reconnecting,
        "exhausted": supervisor.exhausted,
    }


# ------------------------------------------------------------------
# ViewerGateway
# ------------------------------------------------------------------

class ViewerGateway:
    """
    One gateway == one camera viewer.

    The supervisor observes the session's stream for the gateway's whole
    life, except between a user disconnect and the next manual connect.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        session: SignalingSession | None = None,
        sink: MediaSink | None = None,
    ) -> None:
        self._config = config
        self._sink = sink if sink is not None else TrackSink(config.record_path)
        self.session = session or SignalingSession(
            config.camera_id,
            config.relay_server_url,
            ice_servers=config.stun_servers,
            media_sink=self._sink,
        )
        self.supervisor = ReconnectionSupervisor(
            stream=self.session.stream,
            connect=self.session.connect,
            config=config.reconnect,
        )

    @property
    def config(self) -> AppConfig:
        return self._config

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, *, auto_connect: bool = True) -> None:
        """Start supervising and, if a camera is configured, connect."""
        self.supervisor.start()
        log_event({
            "event_type": "VIEWER_STARTED",
            "camera_id": self._config.camera_id,
            "relay_url": self.session.url,
            "reconnect_enabled": self._config.reconnect.enabled,
        })
        if auto_connect and self._config.camera_id:
            await self.session.connect()

    async def stop(self) -> None:
        """End the viewer: supervisor first, then the session scope."""
        self.supervisor.stop()
        await self.session.close()
        if isinstance(self._sink, TrackSink):
            await self._sink.stop()
        log_event({
            "event_type": "VIEWER_STOPPED",
            "camera_id": self._config.camera_id,
        })

    # ------------------------------------------------------------------
    # User triggers
    # ------------------------------------------------------------------

    async def manual_connect(self) -> None:
        """Manual reconnect: fresh retry budget, then a new attempt."""
        self.supervisor.reset()
        self.supervisor.start()
        await self.session.connect()

    async def disconnect(self) -> None:
        """User disconnect: no automatic reconnect follows."""
        self.supervisor.stop()
        await self.session.disconnect()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self, state: ConnectionState | None = None) -> dict[str, Any]:
        snapshot = state if state is not None else self.session.state
        return {
            "camera_id": self._config.camera_id,
            **snapshot.to_dict(),
            "reconnect": reconnect_status(self.supervisor),
            "banner": status_banner(snapshot, self.supervisor),
        }
