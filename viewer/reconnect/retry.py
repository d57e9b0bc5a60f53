"""
Reconnection policy helpers.

Purpose:
- Centralize backoff and retry-eligibility rules
- Keep the supervisor's timer code free of policy decisions
- Allow deterministic, table-driven tests

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from dataclasses import dataclass

from constants import (
    RECONNECT_INITIAL_DELAY_MS,
    RECONNECT_MAX_ATTEMPTS,
    RECONNECT_MAX_DELAY_MS,
)
from signaling.enums.phase import Phase


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class ReconnectConfig:
    """
    Immutable reconnection policy.

    max_attempts:
        Retries allowed between two successful connections.
    initial_delay_ms:
        Delay before the first retry; doubles for each further retry.
    max_delay_ms:
        Upper bound on any single delay.
    enabled:
        When False the supervisor never schedules anything.
    """
    max_attempts: int = RECONNECT_MAX_ATTEMPTS
    initial_delay_ms: int = RECONNECT_INITIAL_DELAY_MS
    max_delay_ms: int = RECONNECT_MAX_DELAY_MS
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0, got {self.max_attempts}")
        if self.initial_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("reconnect delays must be >= 0")


# Phases after which a new attempt is worth making
RETRYABLE_PHASES: frozenset[Phase] = frozenset({
    Phase.DISCONNECTED,
    Phase.FAILED,
    Phase.CLOSED,
})


# =============================================================================
# Delay Calculation
# =============================================================================

def backoff_delay_ms(attempt: int, config: ReconnectConfig) -> int:
    """
    Returns the delay before retry number `attempt` (0-based).

    min(initial_delay_ms * 2**attempt, max_delay_ms), no jitter.
    """
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    return min(config.initial_delay_ms * (2 ** attempt), config.max_delay_ms)


# =============================================================================
# Policy
# =============================================================================

def should_schedule(
    *,
    config: ReconnectConfig,
    connected: bool,
    phase: Phase,
    previous_phase: Phase | None,
    attempts: int,
    session_closed: bool = False,
) -> bool:
    """
    Returns True if a retry should be armed for this snapshot.

    Edge-triggered: a snapshot repeating the previously observed phase
    never schedules again. A closed session ignores connect(), so it is
    never retried.
    """
    return (
        config.enabled
        and not session_closed
        and not connected
        and phase in RETRYABLE_PHASES
        and phase is not previous_phase
        and attempts < config.max_attempts
    )


def is_success(*, connected: bool, phase: Phase) -> bool:
    """A snapshot that resets the attempt counter."""
    return connected and phase is Phase.CONNECTED


def is_exhausted(attempts: int, config: ReconnectConfig) -> bool:
    """True once no further automatic retry is allowed."""
    return config.enabled and attempts >= config.max_attempts
