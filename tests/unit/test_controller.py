from __future__ import annotations

import json
import base64
import asyncio
from typing import Any
from collections.abc import Callable

import pytest
from websockets.exceptions import ConnectionClosedOK

from voice_relay.audio.wav import frame_wav
from voice_relay.client import PlaybackQueue, SessionCallbacks, SessionController


class _RelayConnection:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.close_calls = 0
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    def push(self, msg: dict[str, Any]) -> None:
        self._incoming.put_nowait(json.dumps(msg))

    def __aiter__(self) -> _RelayConnection:
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def send(self, text: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(json.loads(text))

    async def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(None)


class _Recorder:
    def __init__(self) -> None:
        self.on_chunk = None
        self.stop_calls = 0

    async def start(self, on_chunk) -> None:
        self.on_chunk = on_chunk

    async def stop(self) -> None:
        self.stop_calls += 1


class _Player:
    def __init__(self, *, fail_on: bytes | None = None) -> None:
        self.played: list[bytes] = []
        self.active = 0
        self.max_active = 0
        self.stop_calls = 0
        self.release_calls = 0
        self.fail_on = fail_on

    async def play(self, wav: bytes) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0.01)
            if wav == self.fail_on:
                raise OSError("device busy")
            self.played.append(wav)
        finally:
            self.active -= 1

    async def stop(self) -> None:
        self.stop_calls += 1

    async def release(self) -> None:
        self.release_calls += 1


async def _until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


async def _controller(**kwargs: Any) -> tuple[SessionController, _RelayConnection, list[str]]:
    conn = _RelayConnection()
    urls: list[str] = []

    async def connect(url: str, **_options: Any) -> _RelayConnection:
        urls.append(url)
        return conn

    controller = SessionController("ws://relay.test/live-voice", connect=connect, **kwargs)
    await controller.start()
    return controller, conn, urls


@pytest.mark.asyncio
async def test_session_started_and_transcripts() -> None:
    transcripts: list[tuple[str, bool]] = []
    started: list[str] = []
    callbacks = SessionCallbacks(on_message=lambda t, u: transcripts.append((t, u)), on_session_started=started.append)
    controller, conn, _urls = await _controller(callbacks=callbacks)

    conn.push({"type": "session_started", "sessionId": "session_1_abc"})
    conn.push({"type": "transcript", "text": "hello", "isUser": True})
    conn.push({"type": "transcript", "text": "hi there", "isUser": False})
    await _until(lambda: len(transcripts) == 2)

    assert controller.connected is True
    assert controller.session_id == "session_1_abc"
    assert started == ["session_1_abc"]
    assert transcripts == [("hello", True), ("hi there", False)]
    await controller.end_session()


@pytest.mark.asyncio
async def test_recording_sends_chunks_and_end_turn() -> None:
    recorder = _Recorder()
    controller, conn, _urls = await _controller(recorder=recorder)

    await controller.start_recording()
    assert controller.recording is True
    await recorder.on_chunk(b"\x01\x02", "audio/webm")
    await controller.stop_recording()

    assert conn.sent == [
        {"type": "audio_chunk", "data": base64.b64encode(b"\x01\x02").decode("ascii"), "mimeType": "audio/webm"},
        {"type": "end_turn"},
    ]
    assert controller.recording is False
    assert recorder.stop_calls == 1
    await controller.end_session()


@pytest.mark.asyncio
async def test_audio_clips_play_in_order_one_at_a_time() -> None:
    player = _Player()
    controller, conn, _urls = await _controller(player=player)
    clips = [frame_wav(bytes([i]) * 4, 24000) for i in range(3)]

    for clip in clips:
        conn.push({"type": "audio", "audio": base64.b64encode(clip).decode("ascii")})
    await _until(lambda: len(player.played) == 3)

    assert player.played == clips
    assert player.max_active == 1
    await _until(lambda: controller.speaking is False)
    await controller.end_session()


@pytest.mark.asyncio
async def test_failed_clip_does_not_block_queue() -> None:
    bad = frame_wav(b"bad!", 24000)
    good = frame_wav(b"good", 24000)
    player = _Player(fail_on=bad)
    queue = PlaybackQueue(player)

    queue.enqueue(bad)
    queue.enqueue(good)
    assert queue.speaking is False
    await asyncio.sleep(0)
    assert queue.speaking is True
    await queue.wait_idle()

    assert player.played == [good]
    assert queue.speaking is False


@pytest.mark.asyncio
async def test_error_is_reported_without_reconnecting() -> None:
    errors: list[str] = []
    controller, conn, urls = await _controller(callbacks=SessionCallbacks(on_error=errors.append))

    conn.push({"type": "error", "message": "Audio processing error", "code": "audio_processing_error"})
    await _until(lambda: errors == ["Audio processing error"])

    assert controller.connected is True
    assert urls == ["ws://relay.test/live-voice"]
    await controller.end_session()


@pytest.mark.asyncio
async def test_session_ended_releases_everything() -> None:
    recorder = _Recorder()
    player = _Player()
    ended: list[bool] = []
    controller, conn, _urls = await _controller(
        recorder=recorder,
        player=player,
        callbacks=SessionCallbacks(on_ended=lambda: ended.append(True)),
    )
    await controller.start_recording()

    conn.push({"type": "session_ended"})
    await _until(lambda: controller.connected is False)

    assert controller.recording is False
    assert controller.speaking is False
    assert recorder.stop_calls == 1
    assert player.release_calls == 1
    assert conn.closed is True
    assert ended == [True]


@pytest.mark.asyncio
async def test_end_session_is_idempotent() -> None:
    player = _Player()
    controller, conn, _urls = await _controller(player=player)

    await controller.end_session()
    await controller.end_session()

    assert conn.close_calls == 1
    assert player.release_calls == 1
    assert controller.connected is False


@pytest.mark.asyncio
async def test_ping_and_session_info_requests() -> None:
    pongs: list[bool] = []
    infos: list[dict] = []
    callbacks = SessionCallbacks(on_pong=lambda: pongs.append(True), on_session_info=infos.append)
    controller, conn, _urls = await _controller(callbacks=callbacks)

    await controller.send_ping()
    await controller.request_session_info()
    conn.push({"type": "pong"})
    conn.push({"type": "session_info_response", "sessionInfo": {"id": "s", "state": "connected"}})
    await _until(lambda: bool(pongs and infos))

    assert conn.sent == [{"type": "ping"}, {"type": "session_info"}]
    assert infos == [{"id": "s", "state": "connected"}]
    await controller.end_session()
