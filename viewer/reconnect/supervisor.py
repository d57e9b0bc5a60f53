"""
Reconnection supervisor runtime.

Responsibilities:
- Observe ConnectionState snapshots from a StateStream
- Arm one backoff timer per retryable phase edge
- Call the connect callback when the timer fires
- Reset the attempt counter on a successful connection

Non-responsibilities:
- NO policy decisions (reconnect.retry decides)
- NO knowledge of channels, engines or messages
- NO state mutation of the observed session

This module is infrastructure only.
"""

from __future__ import annotations

import asyncio
import inspect
from asyncio import Task
from typing import Any, Callable

from observability.logger import log_event
from reconnect.retry import (
    ReconnectConfig,
    backoff_delay_ms,
    is_exhausted,
    is_success,
    should_schedule,
)
from signaling.enums.phase import Phase
from signaling.state_dataclass import ConnectionState
from signaling.state_stream import StateStream, Unsubscribe


# ---------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------

# Sync or async; an awaitable result is awaited
ConnectFn = Callable[[], Any]


# ---------------------------------------------------------------------
# Supervisor
# ---------------------------------------------------------------------

class ReconnectionSupervisor:
    """
    Exponential-backoff retry driver for one state stream.

    Lifecycle:
    1. observe() subscribes and remembers the current phase
    2. A snapshot entering DISCONNECTED / FAILED / CLOSED arms a timer
    3. Timer fires -> connect callback
    4. A connected snapshot cancels the timer and zeroes the counter
    5. stop() (or leaving the async context) cancels and unsubscribes

    At most one timer is pending at any time.
    """

    def __init__(
        self,
        *,
        stream: StateStream,
        connect: ConnectFn,
        config: ReconnectConfig | None = None,
    ) -> None:
        self._stream = stream
        self._connect = connect
        self._config = config or ReconnectConfig()

        self._attempts = 0
        self._last_phase: Phase | None = None
        self._last_delay_ms: int | None = None
        self._pending: Task[None] | None = None
        self._unsubscribe: Unsubscribe | None = None

    @classmethod
    def observe(
        cls,
        stream: StateStream,
        connect: ConnectFn,
        config: ReconnectConfig | None = None,
    ) -> ReconnectionSupervisor:
        """Build a supervisor and start observing `stream` immediately."""
        supervisor = cls(stream=stream, connect=connect, config=config)
        supervisor.start()
        return supervisor

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def config(self) -> ReconnectConfig:
        return self._config

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def is_reconnecting(self) -> bool:
        """True while a retry timer is armed."""
        return self._pending is not None and not self._pending.done()

    @property
    def exhausted(self) -> bool:
        return is_exhausted(self._attempts, self._config)

    @property
    def last_delay_ms(self) -> int | None:
        return self._last_delay_ms

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Subscribe to the stream.

        Idempotent. The current phase becomes the edge reference, so a
        stream already sitting in DISCONNECTED does not schedule a retry.
        """
        if self._unsubscribe is not None:
            return
        self._last_phase = self._stream.current.phase
        self._unsubscribe = self._stream.subscribe(self._on_state)

    def stop(self) -> None:
        """Cancel any pending retry and unsubscribe. Idempotent."""
        self._cancel_pending()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def reset(self) -> None:
        """
        Zero the attempt counter and drop any pending retry.

        Used by the manual reconnect trigger once the budget is spent.
        """
        self._cancel_pending()
        self._attempts = 0
        self._last_delay_ms = None
        log_event({
            "event_type": "RECONNECT_RESET",
            "max_attempts": self._config.max_attempts,
        })

    async def __aenter__(self) -> ReconnectionSupervisor:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Snapshot handling
    # ------------------------------------------------------------------

    def _on_state(self, state: ConnectionState) -> None:
        previous_phase = self._last_phase
        self._last_phase = state.phase

        if is_success(connected=state.connected, phase=state.phase):
            if self._attempts or self._pending is not None:
                log_event({
                    "event_type": "RECONNECT_SUCCEEDED",
                    "attempts": self._attempts,
                    "attempt_id": state.attempt_id,
                })
            self._cancel_pending()
            self._attempts = 0
            self._last_delay_ms = None
            return

        if state.session_closed and self._pending is not None:
            # A closed session ignores connect(); the armed retry is moot
            self._cancel_pending()

        if should_schedule(
            config=self._config,
            connected=state.connected,
            phase=state.phase,
            previous_phase=previous_phase,
            attempts=self._attempts,
            session_closed=state.session_closed,
        ):
            self._schedule(state)
            return

        if (
            state.phase is not previous_phase
            and is_exhausted(self._attempts, self._config)
        ):
            log_event({
                "event_type": "RECONNECT_EXHAUSTED",
                "phase": state.phase.value,
                "attempts": self._attempts,
                "max_attempts": self._config.max_attempts,
            })

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def _schedule(self, state: ConnectionState) -> None:
        self._cancel_pending()

        delay_ms = backoff_delay_ms(self._attempts, self._config)
        self._attempts += 1
        self._last_delay_ms = delay_ms

        self._pending = asyncio.get_running_loop().create_task(
            self._retry_after(delay_ms)
        )

        log_event({
            "event_type": "RECONNECT_SCHEDULED",
            "phase": state.phase.value,
            "attempt_id": state.attempt_id,
            "attempt": self._attempts,
            "max_attempts": self._config.max_attempts,
            "delay_ms": delay_ms,
            "error": state.error,
        })

    async def _retry_after(self, delay_ms: int) -> None:
        try:
            await asyncio.sleep(delay_ms / 1000)
        except asyncio.CancelledError:
            return

        # Cleared before connecting: the callback may publish a snapshot
        # that schedules the next retry
        self._pending = None

        log_event({
            "event_type": "RECONNECT_FIRED",
            "attempt": self._attempts,
            "delay_ms": delay_ms,
        })

        try:
            result = self._connect()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "RECONNECT_CONNECT_ERROR",
                "attempt": self._attempts,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    def _cancel_pending(self) -> None:
        task = self._pending
        self._pending = None
        if task is not None and not task.done():
            task.cancel()
