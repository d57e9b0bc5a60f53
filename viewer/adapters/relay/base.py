"""
Relay channel contract.

This module defines the *interface only*: no state machine, no retries,
no JSON decoding.

Key invariants:
- One RelayChannel == one protocol-upgraded text connection to
  {server_url}/ws/viewer/{camera_id}.
- receive() raises RelayClosed when the channel closes, whatever the
  close code. Every other failure surfaces as TransportError.
- close() is idempotent and never raises.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable


class RelayClosed(Exception):
    """The relay channel closed. Not an error: carries the close frame."""

    def __init__(self, code: int | None = None, reason: str | None = None) -> None:
        super().__init__(f"relay channel closed (code={code}, reason={reason!r})")
        self.code = code
        self.reason = reason


class RelayChannel(ABC):
    """
    Abstract bidirectional signaling transport.

    Implementations are responsible for:
    - Sending complete text messages
    - Returning complete inbound messages in order
    - Translating transport library exceptions into RelayClosed / TransportError
    """

    @abstractmethod
    async def send(self, text: str) -> None:
        """
        Send one text message.

        Raises:
            TransportError if the channel is closed or the write fails.
        """
        raise NotImplementedError

    @abstractmethod
    async def receive(self) -> str | bytes:
        """
        Wait for the next inbound message.

        Raises:
            RelayClosed when the channel closes (any code).
            TransportError on any other receive failure.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self, code: int, reason: str) -> None:
        """
        Close the channel with the given close code.

        Contract:
        - MUST be idempotent.
        - MUST NOT raise.
        """
        raise NotImplementedError


ChannelFactory = Callable[[str], Awaitable[RelayChannel]]
