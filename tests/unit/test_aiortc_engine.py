# pylint: disable=missing-module-docstring,missing-function-docstring,protected-access

import asyncio
from typing import Any

import pytest

from adapters.negotiation import aiortc_engine
from adapters.negotiation.aiortc_engine import AiortcNegotiationEngine
from observability import logger
from protocol.messages import IceCandidate, OutboundMessage, SessionDescription
from signaling.errors import NegotiationError


@pytest.fixture(autouse=True)
def _quiet_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(logger, "_print", lambda line: None)


class CandidateStub:
    def __init__(self) -> None:
        self.sdpMid: str | None = None  # pylint: disable=invalid-name
        self.sdpMLineIndex: int | None = None  # pylint: disable=invalid-name


def record_added_candidates(
    engine: AiortcNegotiationEngine, monkeypatch: pytest.MonkeyPatch
) -> list[Any]:
    added: list[Any] = []

    async def add_ice_candidate(candidate: Any) -> None:
        added.append(candidate)

    monkeypatch.setattr(engine._pc, "addIceCandidate", add_ice_candidate)
    return added


def test_offer_is_recvonly_audio_and_video_with_gathered_candidates() -> None:
    async def scenario() -> list[OutboundMessage]:
        engine = AiortcNegotiationEngine(())
        signals: list[OutboundMessage] = []

        async def on_signal(message: OutboundMessage) -> None:
            signals.append(message)

        engine.on_local_signal(on_signal)
        try:
            await engine.create_offer()
        finally:
            await engine.close()
        return signals

    signals = asyncio.run(scenario())

    assert len(signals) == 1
    offer = signals[0]
    assert isinstance(offer, SessionDescription)
    assert offer.type == "offer"
    assert offer.sdp.count("a=recvonly") == 2
    assert "m=video" in offer.sdp
    assert "m=audio" in offer.sdp
    # Gathering finished before the offer left: nothing trickles afterwards
    assert "a=end-of-candidates" in offer.sdp


def test_candidate_prefix_is_stripped_before_parsing(monkeypatch: pytest.MonkeyPatch) -> None:
    parsed: list[str] = []

    def fake_candidate_from_sdp(sdp: str) -> CandidateStub:
        parsed.append(sdp)
        return CandidateStub()

    monkeypatch.setattr(aiortc_engine, "candidate_from_sdp", fake_candidate_from_sdp)

    async def scenario() -> list[Any]:
        engine = AiortcNegotiationEngine(())
        added = record_added_candidates(engine, monkeypatch)
        try:
            await engine.add_remote_candidate(IceCandidate(
                candidate="candidate:1 1 UDP 2122252543 10.0.0.1 5000 typ host",
                sdp_mid="0",
                sdp_mline_index=0,
            ))
        finally:
            await engine.close()
        return added

    added = asyncio.run(scenario())

    assert parsed == ["1 1 UDP 2122252543 10.0.0.1 5000 typ host"]
    assert len(added) == 1
    assert added[0].sdpMid == "0"
    assert added[0].sdpMLineIndex == 0


@pytest.mark.parametrize("raw", ["", "candidate:"])
def test_empty_candidate_is_skipped(raw: str, monkeypatch: pytest.MonkeyPatch) -> None:
    async def scenario() -> list[Any]:
        engine = AiortcNegotiationEngine(())
        added = record_added_candidates(engine, monkeypatch)
        try:
            await engine.add_remote_candidate(
                IceCandidate(candidate=raw, sdp_mid="0", sdp_mline_index=0)
            )
        finally:
            await engine.close()
        return added

    assert asyncio.run(scenario()) == []


def test_unparseable_candidate_is_a_negotiation_error() -> None:
    async def scenario() -> None:
        engine = AiortcNegotiationEngine(())
        try:
            await engine.add_remote_candidate(
                IceCandidate(candidate="candidate:garbage", sdp_mid="0", sdp_mline_index=0)
            )
        finally:
            await engine.close()

    with pytest.raises(NegotiationError):
        asyncio.run(scenario())


def test_rejected_remote_description_is_a_negotiation_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def scenario() -> None:
        engine = AiortcNegotiationEngine(())

        async def reject(description: Any) -> None:
            raise ValueError("bad answer")

        monkeypatch.setattr(engine._pc, "setRemoteDescription", reject)
        try:
            await engine.apply_remote_description(
                SessionDescription(type="answer", sdp="v=0")
            )
        finally:
            await engine.close()

    with pytest.raises(NegotiationError, match="bad answer"):
        asyncio.run(scenario())


def test_close_is_idempotent() -> None:
    async def scenario() -> bool:
        engine = AiortcNegotiationEngine(())
        await engine.close()
        await engine.close()
        return engine.closed

    assert asyncio.run(scenario()) is True
