"""
Subscribable stream of ConnectionState snapshots.

Delivery is synchronous: publish() calls every subscriber in
subscription order before returning. The most recent snapshot is
always available as `current`.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from observability.logger import log_event
from signaling.state_dataclass import ConnectionState


Subscriber = Callable[[ConnectionState], None]
Unsubscribe = Callable[[], None]


class StateStream:
    """Last-value-retaining, synchronous snapshot stream."""

    def __init__(self, initial: ConnectionState) -> None:
        self._current = initial
        self._subscribers: list[Subscriber] = []

    @property
    def current(self) -> ConnectionState:
        """The most recently published snapshot."""
        return self._current

    def subscribe(self, callback: Subscriber) -> Unsubscribe:
        """
        Register a subscriber. Returns an idempotent unsubscribe function.

        The subscriber is NOT called with the current value; read
        `current` for that.
        """
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, state: ConnectionState) -> None:
        """
        Replace the current snapshot and deliver it.

        A failing subscriber is logged and skipped; it never breaks the
        publisher or the other subscribers.
        """
        self._current = state
        for callback in tuple(self._subscribers):
            try:
                callback(state)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "STATE_SUBSCRIBER_ERROR",
                    "phase": state.phase.value,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def wait_for(
        self,
        predicate: Callable[[ConnectionState], bool],
        timeout: float | None = None,
    ) -> ConnectionState:
        """
        Wait until a snapshot satisfies `predicate`.

        Checks `current` first. Raises asyncio.TimeoutError on timeout.
        """
        if predicate(self._current):
            return self._current

        loop = asyncio.get_running_loop()
        future: asyncio.Future[ConnectionState] = loop.create_future()

        def _check(state: ConnectionState) -> None:
            if not future.done() and predicate(state):
                future.set_result(state)

        unsubscribe = self.subscribe(_check)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()
