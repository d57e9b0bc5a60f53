"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No signaling logic
- No protocol constants
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import (
    DEFAULT_RELAY_SERVER_URL,
    DEFAULT_STATUS_HOST,
    DEFAULT_STATUS_PORT,
    DEFAULT_STUN_SERVERS,
    RECONNECT_INITIAL_DELAY_MS,
    RECONNECT_MAX_ATTEMPTS,
    RECONNECT_MAX_DELAY_MS,
)
from reconnect.retry import ReconnectConfig


def _split_csv(raw: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not raw:
        return default
    items = tuple(part.strip() for part in raw.split(",") if part.strip())
    return items or default


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the viewer bootstrap code.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str

    # ------------------------------------------------------------------
    # Relay / camera
    # ------------------------------------------------------------------

    relay_server_url: str
    camera_id: str

    # ------------------------------------------------------------------
    # ICE
    # ------------------------------------------------------------------

    stun_servers: tuple[str, ...]

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    reconnect: ReconnectConfig

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    record_path: str | None

    # ------------------------------------------------------------------
    # Local status surface
    # ------------------------------------------------------------------

    status_host: str
    status_port: int

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable is not an integer.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),

            relay_server_url=os.environ.get("RELAY_SERVER_URL", DEFAULT_RELAY_SERVER_URL),
            camera_id=os.environ.get("CAMERA_ID", ""),

            stun_servers=_split_csv(os.environ.get("STUN_SERVERS"), DEFAULT_STUN_SERVERS),

            reconnect=ReconnectConfig(
                max_attempts=int(os.environ.get("RECONNECT_MAX_ATTEMPTS", RECONNECT_MAX_ATTEMPTS)),
                initial_delay_ms=int(
                    os.environ.get("RECONNECT_INITIAL_DELAY_MS", RECONNECT_INITIAL_DELAY_MS)
                ),
                max_delay_ms=int(os.environ.get("RECONNECT_MAX_DELAY_MS", RECONNECT_MAX_DELAY_MS)),
                enabled=os.environ.get("RECONNECT_ENABLED", "1") == "1",
            ),

            record_path=os.environ.get("RECORD_PATH") or None,

            status_host=os.environ.get("STATUS_HOST", DEFAULT_STATUS_HOST),
            status_port=int(os.environ.get("STATUS_PORT", DEFAULT_STATUS_PORT)),
        )
