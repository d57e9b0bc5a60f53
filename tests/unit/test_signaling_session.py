# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json

import pytest

from observability import logger
from reconnect.retry import ReconnectConfig
from reconnect.supervisor import ReconnectionSupervisor
from signaling.enums.error_kind import ErrorKind
from signaling.enums.phase import Phase
from signaling.errors import TransportError
from signaling.runtime import SignalingSession, build_relay_url
from signaling.state_dataclass import ConnectionState

from fakes import FakeChannelFactory, FakeEngineFactory, FakeTrack, RecordingSink


TIMEOUT_S = 1.0
ANSWER = json.dumps({"sdp": {"type": "answer", "sdp": "v=0 answer"}})


@pytest.fixture(autouse=True)
def _quiet_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(logger, "_print", lambda line: None)


def make_session(
    camera_id: str = "cam-1",
    **engine_kwargs: object,
) -> tuple[SignalingSession, FakeChannelFactory, FakeEngineFactory, RecordingSink]:
    channels = FakeChannelFactory()
    engines = FakeEngineFactory(**engine_kwargs)
    sink = RecordingSink()
    session = SignalingSession(
        camera_id,
        "ws://relay.test/",
        channel_factory=channels,
        engine_factory=engines,
        media_sink=sink,
    )
    return session, channels, engines, sink


async def wait_phase(session: SignalingSession, phase: Phase) -> ConnectionState:
    return await session.stream.wait_for(lambda s: s.phase is phase, TIMEOUT_S)


async def open_channel(session: SignalingSession) -> ConnectionState:
    await session.connect()
    return await session.stream.wait_for(lambda s: s.channel_open, TIMEOUT_S)


def test_relay_url_escapes_camera_id() -> None:
    assert build_relay_url("ws://relay.test/", "cam-1") == "ws://relay.test/ws/viewer/cam-1"
    assert build_relay_url("wss://relay", "a b/c") == "wss://relay/ws/viewer/a%20b%2Fc"


def test_happy_path_reaches_connected() -> None:
    async def scenario() -> None:
        session, channels, engines, sink = make_session()
        snapshots: list[ConnectionState] = []
        session.stream.subscribe(snapshots.append)

        state = await open_channel(session)
        assert state.phase is Phase.CONNECTING
        assert not state.connected
        assert channels.urls == ["ws://relay.test/ws/viewer/cam-1"]

        # Offer went out as a single sdp message
        offer = json.loads(channels.last.sent[0])
        assert offer == {"sdp": {"type": "offer", "sdp": "v=0 offer"}}

        channels.last.feed(ANSWER)
        channels.last.feed(json.dumps({
            "candidate": {"candidate": "candidate:1 1 UDP 1 10.0.0.2 5000 typ host",
                          "sdpMid": "0", "sdpMLineIndex": 0},
        }))
        channels.last.feed(json.dumps({
            "candidate": {"candidate": "candidate:2 1 UDP 1 10.0.0.2 5002 typ host",
                          "sdpMid": "1", "sdpMLineIndex": 1},
        }))
        await asyncio.sleep(0.01)

        engine = engines.last
        assert [d.type for d in engine.remote_descriptions] == ["answer"]
        assert [c.sdp_mline_index for c in engine.remote_candidates] == [0, 1]

        await engine.fire_track(FakeTrack("video", id="v1"))

        state = session.state
        assert state.phase is Phase.CONNECTED
        assert state.connected
        assert not state.loading
        assert state.media is not None and state.media.video is not None
        assert sink.calls and sink.calls[-1] is state.media

        phases = [s.phase for s in snapshots]
        assert phases[0] is Phase.CONNECTING
        assert phases[-1] is Phase.CONNECTED

        await session.close()

    asyncio.run(scenario())


def test_double_connect_opens_one_channel() -> None:
    async def scenario() -> None:
        session, channels, _, _ = make_session()

        await session.connect()
        await session.connect()
        await session.stream.wait_for(lambda s: s.channel_open, TIMEOUT_S)

        assert len(channels.channels) == 1
        assert session.state.attempt_id == 1

        await session.close()

    asyncio.run(scenario())


def test_connect_supersedes_negotiation_that_never_answers() -> None:
    async def scenario() -> None:
        session, channels, engines, _ = make_session()
        await open_channel(session)
        stalled_channel = channels.last
        stalled_engine = engines.last

        # No answer ever arrives; a new connect() must not be swallowed
        await session.connect()
        state = await session.stream.wait_for(
            lambda s: s.attempt_id == 2 and s.channel_open, TIMEOUT_S
        )

        assert len(channels.channels) == 2
        assert state.phase is Phase.CONNECTING
        assert stalled_channel.closed_with == (1000, "Reconnect")
        assert stalled_engine.closed

        await session.close()

    asyncio.run(scenario())


def test_connect_without_camera_id_does_nothing() -> None:
    async def scenario() -> None:
        session, channels, _, _ = make_session(camera_id="")

        await session.connect()
        await asyncio.sleep(0.01)

        assert session.state == ConnectionState()
        assert not channels.channels

    asyncio.run(scenario())


def test_disconnect_is_idempotent_and_closes_with_user_reason() -> None:
    async def scenario() -> None:
        session, channels, engines, _ = make_session()
        await open_channel(session)

        await session.disconnect()
        await session.disconnect()

        state = session.state
        assert state.phase is Phase.DISCONNECTED
        assert not state.connected
        assert state.media is None
        assert not state.loading
        assert channels.last.closed_with == (1000, "User disconnect")
        assert engines.last.closed

    asyncio.run(scenario())


def test_disconnect_before_any_connect_never_raises() -> None:
    async def scenario() -> None:
        session, _, _, _ = make_session()
        await session.disconnect()
        assert session.state.phase is Phase.DISCONNECTED

    asyncio.run(scenario())


def test_relay_error_message_fails_attempt() -> None:
    async def scenario() -> None:
        session, channels, engines, _ = make_session()
        await open_channel(session)

        channels.last.feed(json.dumps({"error": "camera offline"}))
        state = await wait_phase(session, Phase.FAILED)

        assert state.error == "camera offline"
        assert state.error_kind is ErrorKind.SIGNALING
        assert state.media is None
        assert not state.loading
        assert engines.last.closed
        assert channels.last.closed_with is not None

    asyncio.run(scenario())


def test_relay_error_schedules_retry_after_initial_delay() -> None:
    async def scenario() -> None:
        session, channels, _, _ = make_session()
        supervisor = ReconnectionSupervisor.observe(
            session.stream, session.connect, ReconnectConfig()
        )

        await open_channel(session)
        channels.last.feed(json.dumps({"error": "camera offline"}))
        await wait_phase(session, Phase.FAILED)

        assert supervisor.attempts == 1
        assert supervisor.is_reconnecting
        assert supervisor.last_delay_ms == 2000

        supervisor.stop()
        await session.close()

    asyncio.run(scenario())


def test_retry_reconnects_and_success_resets_budget() -> None:
    async def scenario() -> None:
        session, channels, engines, _ = make_session()
        config = ReconnectConfig(initial_delay_ms=10, max_delay_ms=10)

        async with ReconnectionSupervisor.observe(session.stream, session.connect, config) as sup:
            await open_channel(session)
            channels.last.remote_close(code=1001, reason="going away")
            await wait_phase(session, Phase.DISCONNECTED)
            assert sup.attempts == 1

            # Timer fires and opens a second channel
            await session.stream.wait_for(
                lambda s: s.attempt_id == 2 and s.channel_open, TIMEOUT_S
            )
            assert len(channels.channels) == 2

            await engines.last.fire_track(FakeTrack("video"))
            assert session.state.connected
            assert sup.attempts == 0

        await session.close()

    asyncio.run(scenario())


def test_parse_error_keeps_phase_and_reports_error() -> None:
    async def scenario() -> None:
        session, channels, _, _ = make_session()
        await open_channel(session)

        channels.last.feed("{not json")
        state = await session.stream.wait_for(lambda s: s.error is not None, TIMEOUT_S)

        assert state.phase is Phase.CONNECTING
        assert state.error == "Failed to parse relay message"
        assert state.error_kind is ErrorKind.PARSE

        # The channel is still pumping messages
        channels.last.feed(ANSWER)
        await asyncio.sleep(0.01)
        assert session.state.phase is Phase.CONNECTING

        await session.close()

    asyncio.run(scenario())


def test_remote_close_disconnects() -> None:
    async def scenario() -> None:
        session, channels, engines, sink = make_session()
        await open_channel(session)
        await engines.last.fire_track(FakeTrack("video"))

        channels.last.remote_close(code=1000)
        state = await wait_phase(session, Phase.DISCONNECTED)

        assert not state.channel_open
        assert state.media is None
        assert sink.calls[-1] is None

    asyncio.run(scenario())


def test_channel_open_failure_is_a_transport_error() -> None:
    async def failing_factory(url: str):
        raise TransportError(f"connect to {url} failed")

    async def scenario() -> None:
        session = SignalingSession(
            "cam-1",
            "ws://relay.test",
            channel_factory=failing_factory,
            engine_factory=FakeEngineFactory(),
        )
        await session.connect()
        state = await wait_phase(session, Phase.FAILED)

        assert state.error_kind is ErrorKind.TRANSPORT
        assert state.error is not None and state.error.startswith("Relay channel error:")

    asyncio.run(scenario())


def test_rejected_answer_is_a_negotiation_failure() -> None:
    async def scenario() -> None:
        session, channels, _, _ = make_session(fail_on_answer=True)
        await open_channel(session)

        channels.last.feed(ANSWER)
        state = await wait_phase(session, Phase.FAILED)

        assert state.error_kind is ErrorKind.NEGOTIATION

    asyncio.run(scenario())


def test_peer_failure_is_a_negotiation_failure() -> None:
    async def scenario() -> None:
        session, _, engines, _ = make_session()
        await open_channel(session)

        await engines.last.fire_state("failed")

        assert session.state.phase is Phase.FAILED
        assert session.state.error_kind is ErrorKind.NEGOTIATION

    asyncio.run(scenario())


def test_reconnect_supersedes_previous_channel() -> None:
    async def scenario() -> None:
        session, channels, engines, _ = make_session()
        await open_channel(session)
        await engines.last.fire_track(FakeTrack("video"))
        first_channel = channels.last
        first_engine = engines.last

        await session.connect()
        await session.stream.wait_for(lambda s: s.attempt_id == 2 and s.channel_open, TIMEOUT_S)

        assert first_channel.closed_with == (1000, "Reconnect")
        assert first_engine.closed

        # Late close from the old channel cannot clobber the new attempt
        first_channel.remote_close()
        await asyncio.sleep(0.01)
        assert session.state.phase is Phase.CONNECTING
        assert session.state.channel_open

        await session.close()

    asyncio.run(scenario())


def test_close_ends_the_session() -> None:
    async def scenario() -> None:
        session, channels, _, _ = make_session()
        await open_channel(session)

        await session.close()
        await session.connect()
        await asyncio.sleep(0.01)

        assert session.state.phase is Phase.CLOSED
        assert len(channels.channels) == 1

    asyncio.run(scenario())


def test_close_under_supervision_spends_no_retry() -> None:
    async def scenario() -> None:
        session, _, _, _ = make_session()
        supervisor = ReconnectionSupervisor.observe(
            session.stream, session.connect, ReconnectConfig()
        )
        await open_channel(session)

        await session.close()

        assert session.state.phase is Phase.CLOSED
        assert supervisor.attempts == 0
        assert not supervisor.is_reconnecting
        supervisor.stop()

    asyncio.run(scenario())
