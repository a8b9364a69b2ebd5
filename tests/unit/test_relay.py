from __future__ import annotations

import base64
import struct
import asyncio

import pytest

from voice_relay.audio.wav import strip_wav_header
from voice_relay.errors import AudioProcessingError
from voice_relay.realtime.events import UpstreamMessage
from voice_relay.handlers.registry import SessionRegistry
from voice_relay.state.session import STATE_CLOSED, STATE_CONNECTED, STATE_CONNECTING

from tests.fakes import FakeBridge, FakeTranscoder, build_relay

PCM_MIME = "audio/pcm;rate=16000"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.mark.asyncio
async def test_start_opens_upstream_and_announces_session() -> None:
    relay, ws, _registry, bridge = await build_relay()

    assert await relay.start() is True
    assert relay.session.state == STATE_CONNECTED
    assert relay.session.upstream is bridge.upstream
    assert ws.of_type("session_started") == [{"type": "session_started", "sessionId": relay.session.id}]


@pytest.mark.asyncio
async def test_audio_chunks_forwarded_in_arrival_order() -> None:
    relay, _ws, _registry, bridge = await build_relay()
    await relay.start()

    chunks = [b"\x01\x00", b"\x02\x00", b"\x03\x00"]
    for chunk in chunks:
        await relay.handle_audio_chunk(_b64(chunk), PCM_MIME)

    assert bridge.upstream.audio == [_b64(c) for c in chunks]


@pytest.mark.asyncio
async def test_end_turn_signals_upstream_without_closing_it() -> None:
    relay, _ws, _registry, bridge = await build_relay()
    await relay.start()

    await relay.handle_audio_chunk(_b64(b"\x01\x00"), PCM_MIME)
    await relay.handle_end_turn()
    await relay.handle_audio_chunk(_b64(b"\x02\x00"), PCM_MIME)

    assert bridge.upstream.events == [
        ("audio", _b64(b"\x01\x00")),
        ("turn_complete", None),
        ("audio", _b64(b"\x02\x00")),
    ]
    assert bridge.upstream.close_calls == 0
    assert relay.session.state == STATE_CONNECTED


@pytest.mark.asyncio
async def test_end_turn_is_noop_under_vad_policy() -> None:
    relay, _ws, _registry, bridge = await build_relay(end_turn_policy="vad")
    await relay.start()

    await relay.handle_end_turn()

    assert bridge.upstream.turn_completes == 0
    assert bridge.upstream.close_calls == 0


@pytest.mark.asyncio
async def test_turn_audio_is_reassembled_into_one_wav() -> None:
    relay, ws, _registry, _bridge = await build_relay()
    await relay.start()

    await relay._on_upstream_message(UpstreamMessage(audio_chunks=[b"AA"]))
    await relay._on_upstream_message(UpstreamMessage(audio_chunks=[b"BB"]))
    assert ws.of_type("audio") == []

    await relay._on_upstream_message(UpstreamMessage(audio_chunks=[b"CC"], turn_complete=True))

    audio = ws.of_type("audio")
    assert len(audio) == 1
    wav = base64.b64decode(audio[0]["audio"])
    assert strip_wav_header(wav) == b"AABBCC"
    (sample_rate,) = struct.unpack_from("<I", wav, 24)
    assert sample_rate == 24000
    assert relay.session.audio_response_buffer == []


@pytest.mark.asyncio
async def test_turn_without_audio_sends_nothing() -> None:
    relay, ws, _registry, _bridge = await build_relay()
    await relay.start()

    await relay._on_upstream_message(UpstreamMessage(turn_complete=True))

    assert ws.of_type("audio") == []


@pytest.mark.asyncio
async def test_transcripts_are_relayed_with_speaker() -> None:
    relay, ws, _registry, _bridge = await build_relay()
    await relay.start()

    await relay._on_upstream_message(UpstreamMessage(user_texts=["how do I save"], model_texts=["start small"]))

    assert ws.of_type("transcript") == [
        {"type": "transcript", "text": "how do I save", "isUser": True},
        {"type": "transcript", "text": "start small", "isUser": False},
    ]


@pytest.mark.asyncio
async def test_interrupted_discards_buffered_turn_audio() -> None:
    relay, ws, _registry, _bridge = await build_relay()
    await relay.start()

    await relay._on_upstream_message(UpstreamMessage(audio_chunks=[b"old"]))
    await relay._on_upstream_message(UpstreamMessage(interrupted=True))
    await relay._on_upstream_message(UpstreamMessage(audio_chunks=[b"new!"], turn_complete=True))

    wav = base64.b64decode(ws.of_type("audio")[0]["audio"])
    assert strip_wav_header(wav) == b"new!"


@pytest.mark.asyncio
async def test_audio_before_upstream_open_is_queued_and_flushed_in_order() -> None:
    bridge = FakeBridge(open_on_connect=False)
    relay, ws, _registry, _bridge = await build_relay(bridge=bridge)
    await relay.start()
    assert relay.session.state == STATE_CONNECTING

    await relay.handle_audio_chunk(_b64(b"\x01\x00"), PCM_MIME)
    await relay.handle_end_turn()
    await relay.handle_audio_chunk(_b64(b"\x02\x00"), PCM_MIME)
    assert bridge.upstream.events == []

    await bridge.callbacks.on_open()

    assert relay.session.state == STATE_CONNECTED
    assert ws.of_type("session_started")
    assert bridge.upstream.events == [
        ("audio", _b64(b"\x01\x00")),
        ("turn_complete", None),
        ("audio", _b64(b"\x02\x00")),
    ]


@pytest.mark.asyncio
async def test_pending_audio_queue_is_bounded() -> None:
    bridge = FakeBridge(open_on_connect=False)
    relay, _ws, _registry, _bridge = await build_relay(bridge=bridge, max_pending_audio=2)
    await relay.start()

    for chunk in (b"\x01\x00", b"\x02\x00", b"\x03\x00"):
        await relay.handle_audio_chunk(_b64(chunk), PCM_MIME)
    await bridge.callbacks.on_open()

    assert bridge.upstream.audio == [_b64(b"\x02\x00"), _b64(b"\x03\x00")]


@pytest.mark.asyncio
async def test_upstream_connect_failure_notifies_client_and_tears_down() -> None:
    relay, ws, registry, _bridge = await build_relay(bridge=FakeBridge(fail=True))

    assert await relay.start() is False

    assert ws.of_type("error")[0]["message"] == "Failed to initialize voice session"
    assert relay.session.state == STATE_CLOSED
    assert ws.closed
    assert registry.count() == 0


@pytest.mark.asyncio
async def test_upstream_error_tears_down_once() -> None:
    relay, ws, registry, bridge = await build_relay()
    await relay.start()

    await bridge.callbacks.on_error(ConnectionError("reset"))
    await bridge.callbacks.on_error(ConnectionError("reset again"))

    assert len(ws.of_type("error")) == 1
    assert bridge.upstream.close_calls == 1
    assert ws.close_code == 4003
    assert relay.session.state == STATE_CLOSED
    assert registry.count() == 0


@pytest.mark.asyncio
async def test_upstream_close_ends_session() -> None:
    relay, ws, registry, bridge = await build_relay()
    await relay.start()

    await bridge.callbacks.on_close("bye")

    assert ws.of_type("session_ended") == [{"type": "session_ended"}]
    assert ws.close_code == 1000
    assert ws.close_reason == "Session cleanup"
    assert registry.count() == 0


@pytest.mark.asyncio
async def test_forward_failure_is_fatal() -> None:
    relay, ws, _registry, bridge = await build_relay()
    await relay.start()
    bridge.upstream.fail_sends = True

    await relay.handle_audio_chunk(_b64(b"\x01\x00"), PCM_MIME)

    assert ws.of_type("error")[0]["code"] == "upstream_error"
    assert relay.session.state == STATE_CLOSED


@pytest.mark.asyncio
async def test_stop_acknowledges_then_tears_down() -> None:
    relay, ws, registry, bridge = await build_relay()
    await relay.start()

    await relay.handle_stop()

    assert ws.sent[-1] == {"type": "session_stopped"}
    assert bridge.upstream.close_calls == 1
    assert ws.close_code == 1000
    assert registry.count() == 0

    # Everything after teardown is dropped.
    await relay.handle_audio_chunk(_b64(b"\x01\x00"), PCM_MIME)
    await relay.handle_end_turn()
    await relay.handle_ping()
    assert bridge.upstream.events == []
    assert ws.sent[-1] == {"type": "session_stopped"}


@pytest.mark.asyncio
async def test_close_is_idempotent() -> None:
    relay, ws, _registry, bridge = await build_relay()
    await relay.start()

    await relay.close()
    await relay.close("idle_timeout")

    assert bridge.upstream.close_calls == 1
    # A client disconnect does not try to close the already-gone socket.
    assert ws.close_calls == 0


@pytest.mark.asyncio
async def test_idle_eviction_releases_upstream_exactly_once() -> None:
    clock = {"now": 1000.0}
    registry = SessionRegistry(timeout_s=60.0, sweep_interval_s=10.0, now_fn=lambda: clock["now"])
    relay, ws, _registry, bridge = await build_relay(registry=registry)
    await relay.start()
    sent_before = list(ws.sent)

    clock["now"] += 61.0
    assert await registry.sweep_once() == 1

    assert bridge.upstream.close_calls == 1
    assert ws.close_code == 4000
    assert ws.close_reason == "idle timeout"
    assert ws.sent == sent_before
    assert registry.count() == 0

    await relay.close()
    assert bridge.upstream.close_calls == 1


@pytest.mark.asyncio
async def test_ping_and_session_info() -> None:
    relay, ws, _registry, _bridge = await build_relay()
    await relay.start()

    await relay.handle_ping()
    await relay.handle_session_info()

    assert ws.sent[-2] == {"type": "pong"}
    info = ws.sent[-1]
    assert info["type"] == "session_info_response"
    assert "session" not in info
    assert info["sessionInfo"]["id"] == relay.session.id
    assert info["sessionInfo"]["isActive"] is True


@pytest.mark.asyncio
async def test_invalid_base64_is_recoverable() -> None:
    relay, _ws, _registry, bridge = await build_relay()
    await relay.start()

    with pytest.raises(AudioProcessingError):
        await relay.handle_audio_chunk("!!not base64!!", PCM_MIME)

    assert relay.session.state == STATE_CONNECTED
    await relay.handle_audio_chunk(_b64(b"\x01\x00"), PCM_MIME)
    assert bridge.upstream.audio == [_b64(b"\x01\x00")]


@pytest.mark.asyncio
async def test_compressed_audio_goes_through_transcoder() -> None:
    transcoder = FakeTranscoder(output=b"\x05\x00\x06\x00")
    relay, _ws, _registry, bridge = await build_relay(transcoder=transcoder)
    await relay.start()

    await relay.handle_audio_chunk(_b64(b"webm-bytes"), "audio/webm;codecs=opus")

    assert transcoder.calls == [(b"webm-bytes", ".webm")]
    assert bridge.upstream.audio == [_b64(b"\x05\x00\x06\x00")]


@pytest.mark.asyncio
async def test_teardown_cancels_inflight_transcode() -> None:
    transcoder = FakeTranscoder(block=True)
    relay, _ws, _registry, bridge = await build_relay(transcoder=transcoder)
    await relay.start()

    pending = asyncio.create_task(relay.handle_audio_chunk(_b64(b"m4a-bytes"), "audio/m4a"))
    await asyncio.wait_for(transcoder.started.wait(), timeout=1.0)

    await relay.close("idle_timeout")
    await asyncio.wait_for(pending, timeout=1.0)

    assert transcoder.cancelled is True
    assert bridge.upstream.audio == []
