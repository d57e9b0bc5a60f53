# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger
from observability import metrics


def _capture(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)
    return captured


def test_log_event_emits_valid_jsonl(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """
    Contract:
    - log_event emits exactly one JSONL line
    - payload is serialized as-is
    - output sink is patchable
    """
    captured = _capture(monkeypatch)

    payload: dict[str, Any] = {
        "ts_ms": 42,
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    # Exactly one line emitted
    assert len(captured) == 1

    # Payload must be preserved exactly
    assert json.loads(captured[0]) == payload


def test_log_event_adds_timestamp_without_mutating_caller(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured = _capture(monkeypatch)

    payload: dict[str, Any] = {"event_type": "TEST"}
    logger.log_event(payload)

    decoded = json.loads(captured[0])
    assert isinstance(decoded["ts_ms"], int)
    assert "ts_ms" not in payload


def test_log_event_never_raises_on_unserializable_payload(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured = _capture(monkeypatch)

    logger.log_event({"event_type": "TEST", "bad": object()})

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"


def test_timer_emits_one_metric_line(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture(monkeypatch)

    timer_id = metrics.start_timer("connect_to_media_ms")
    duration = metrics.stop_timer(timer_id, camera_id="cam-1", attempt_id=3)

    assert duration is not None and duration >= 0
    assert len(captured) == 1
    decoded = json.loads(captured[0])
    assert decoded["metric"] == "connect_to_media_ms"
    assert decoded["attempt_id"] == 3

    # Unknown / already-stopped timers are a no-op
    assert metrics.stop_timer(timer_id) is None
    assert len(captured) == 1


def test_cancelled_timer_is_discarded(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture(monkeypatch)
    before = metrics.active_timer_count()

    timer_id = metrics.start_timer("connect_to_media_ms")
    metrics.cancel_timer(timer_id)
    metrics.cancel_timer(None)

    assert metrics.active_timer_count() == before
    assert not captured
