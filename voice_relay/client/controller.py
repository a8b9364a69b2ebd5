"""Client-side controller for one live voice session."""

from __future__ import annotations

import json
import base64
import asyncio
import logging
import binascii
import contextlib
from typing import Any, Protocol
from dataclasses import dataclass
from collections.abc import Callable, Awaitable

import websockets
from websockets.exceptions import ConnectionClosed

from voice_relay.config.audio import INPUT_MIME_TYPE
from voice_relay.config.websocket import (
    WS_KEY_DATA,
    WS_KEY_TYPE,
    WS_TYPE_PING,
    WS_TYPE_PONG,
    WS_TYPE_AUDIO,
    WS_TYPE_ERROR,
    WS_KEY_MESSAGE,
    WS_KEY_MIME_TYPE,
    WS_TYPE_END_TURN,
    WS_KEY_SESSION_ID,
    WS_TYPE_TRANSCRIPT,
    WS_KEY_SESSION_INFO,
    WS_TYPE_AUDIO_CHUNK,
    WS_TYPE_SESSION_INFO,
    WS_TYPE_SESSION_ENDED,
    WS_TYPE_SESSION_STARTED,
    WS_TYPE_SESSION_STOPPED,
    WS_TYPE_SESSION_INFO_RESPONSE,
)

from .playback import Player, PlaybackQueue

logger = logging.getLogger(__name__)

ChunkFn = Callable[[bytes, str], Awaitable[None]]


class Recorder(Protocol):
    async def start(self, on_chunk: ChunkFn) -> None:
        """Begin capturing; call ``on_chunk(data, mime_type)`` per captured chunk."""
        ...

    async def stop(self) -> None: ...


@dataclass(slots=True)
class SessionCallbacks:
    on_message: Callable[[str, bool], None] | None = None
    on_error: Callable[[str], None] | None = None
    on_session_started: Callable[[str], None] | None = None
    on_session_info: Callable[[dict[str, Any]], None] | None = None
    on_pong: Callable[[], None] | None = None
    on_ended: Callable[[], None] | None = None


class SessionController:
    """Drives one session against the relay: capture, send, receive, playback.

    Errors are surfaced through ``on_error`` and never retried. Every way a
    session ends goes through ``end_session()``; reconnecting is an explicit
    new ``start()``.
    """

    def __init__(
        self,
        url: str,
        callbacks: SessionCallbacks | None = None,
        *,
        recorder: Recorder | None = None,
        player: Player | None = None,
        api_key: str | None = None,
        connect: Callable[..., Awaitable[Any]] | None = None,
    ) -> None:
        self.url = url
        self.callbacks = callbacks or SessionCallbacks()
        self._recorder = recorder
        self._api_key = (api_key or "").strip()
        self._connect = connect or websockets.connect
        self._playback = PlaybackQueue(player)

        self._ws: Any = None
        self._recv_task: asyncio.Task | None = None
        self._ending = False

        self.session_id: str | None = None
        self.connected = False
        self.recording = False

    @property
    def speaking(self) -> bool:
        return self._playback.speaking

    @property
    def playback(self) -> PlaybackQueue:
        return self._playback

    async def start(self) -> None:
        if self.connected:
            return
        headers = [("X-API-Key", self._api_key)] if self._api_key else []
        self._ws = await self._connect(self.url, additional_headers=headers, max_size=None)
        self.connected = True
        self._ending = False
        self._recv_task = asyncio.create_task(self._receive_loop())

    async def _send(self, data: dict[str, Any]) -> bool:
        if not self.connected or self._ws is None:
            return False
        try:
            await self._ws.send(json.dumps(data))
        except ConnectionClosed:
            logger.debug("send on closed relay connection dropped")
            return False
        return True

    async def _send_chunk(self, data: bytes, mime_type: str = INPUT_MIME_TYPE) -> None:
        await self._send({
            WS_KEY_TYPE: WS_TYPE_AUDIO_CHUNK,
            WS_KEY_DATA: base64.b64encode(data).decode("ascii"),
            WS_KEY_MIME_TYPE: mime_type,
        })

    async def send_audio(self, data: bytes, mime_type: str = INPUT_MIME_TYPE) -> None:
        await self._send_chunk(data, mime_type)

    async def start_recording(self) -> None:
        if not self.connected:
            raise RuntimeError("session is not connected")
        if self.recording:
            return
        if self._recorder is None:
            raise RuntimeError("no recorder configured")
        await self._recorder.start(self._send_chunk)
        self.recording = True

    async def _stop_recorder(self) -> None:
        if not self.recording:
            return
        self.recording = False
        if self._recorder is not None:
            try:
                await self._recorder.stop()
            except Exception:
                logger.warning("recorder stop failed", exc_info=True)

    async def stop_recording(self) -> None:
        if not self.recording:
            return
        await self._stop_recorder()
        await self._send({WS_KEY_TYPE: WS_TYPE_END_TURN})

    async def end_turn(self) -> None:
        await self._send({WS_KEY_TYPE: WS_TYPE_END_TURN})

    async def send_ping(self) -> None:
        await self._send({WS_KEY_TYPE: WS_TYPE_PING})

    async def request_session_info(self) -> None:
        await self._send({WS_KEY_TYPE: WS_TYPE_SESSION_INFO})

    async def _handle_message(self, msg: dict[str, Any]) -> None:
        msg_type = msg.get(WS_KEY_TYPE)
        cb = self.callbacks

        if msg_type == WS_TYPE_SESSION_STARTED:
            self.session_id = msg.get(WS_KEY_SESSION_ID)
            if cb.on_session_started is not None and self.session_id:
                cb.on_session_started(self.session_id)
        elif msg_type == WS_TYPE_TRANSCRIPT:
            if cb.on_message is not None:
                cb.on_message(str(msg.get("text") or ""), bool(msg.get("isUser")))
        elif msg_type == WS_TYPE_AUDIO:
            try:
                wav = base64.b64decode(msg.get("audio") or "", validate=True)
            except (binascii.Error, ValueError):
                logger.warning("dropping audio message with invalid base64")
                return
            if wav:
                self._playback.enqueue(wav)
        elif msg_type == WS_TYPE_ERROR:
            if cb.on_error is not None:
                cb.on_error(str(msg.get(WS_KEY_MESSAGE) or "unknown error"))
        elif msg_type in (WS_TYPE_SESSION_STOPPED, WS_TYPE_SESSION_ENDED):
            await self.end_session()
        elif msg_type == WS_TYPE_SESSION_INFO_RESPONSE:
            if cb.on_session_info is not None:
                cb.on_session_info(msg.get(WS_KEY_SESSION_INFO) or {})
        elif msg_type == WS_TYPE_PONG:
            if cb.on_pong is not None:
                cb.on_pong()
        else:
            logger.debug("ignoring relay message type %r", msg_type)

    async def _receive_loop(self) -> None:
        ws = self._ws
        try:
            async for raw in ws:
                try:
                    msg = json.loads(raw)
                except ValueError:
                    logger.warning("ignoring malformed relay message")
                    continue
                if isinstance(msg, dict):
                    await self._handle_message(msg)
                if self._ending:
                    return
        except ConnectionClosed:
            logger.info("relay connection closed")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("relay receive loop failed")
            if self.callbacks.on_error is not None:
                self.callbacks.on_error("connection error")
        await self.end_session()

    async def end_session(self) -> None:
        """Release everything regardless of what ended the session. Idempotent."""
        if self._ending:
            return
        self._ending = True

        await self._stop_recorder()
        await self._playback.release()

        ws = self._ws
        self._ws = None
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()

        task = self._recv_task
        self._recv_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.wait({task})

        was_connected = self.connected
        self.connected = False
        self.recording = False
        if was_connected and self.callbacks.on_ended is not None:
            self.callbacks.on_ended()


__all__ = ["Recorder", "SessionCallbacks", "SessionController"]
