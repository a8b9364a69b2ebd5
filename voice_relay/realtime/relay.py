"""Per-session relay between one client WebSocket and one upstream conversation."""

from __future__ import annotations

import base64
import asyncio
import logging
import contextlib
from typing import Any
from collections import deque

from fastapi import WebSocket

from voice_relay.audio.wav import frame_wav
from voice_relay.audio.normalizer import AudioNormalizer, decode_base64_audio
from voice_relay.handlers.registry import REASON_IDLE_TIMEOUT, SessionRegistry
from voice_relay.handlers.websocket.errors import send_error, safe_send_json
from voice_relay.errors import ProtocolError, UpstreamConnectionError
from voice_relay.config.audio import INPUT_MIME_TYPE, OUTPUT_SAMPLE_RATE_HZ
from voice_relay.config.limits import DEFAULT_MAX_PENDING_AUDIO_CHUNKS
from voice_relay.config.upstream import END_TURN_POLICY_VAD, DEFAULT_END_TURN_POLICY
from voice_relay.state.session import (
    STATE_ERROR,
    STATE_CLOSED,
    STATE_CLOSING,
    TERMINAL_STATES,
    STATE_CONNECTED,
    STATE_CONNECTING,
    Session,
)
from voice_relay.config.websocket import (
    WS_KEY_TYPE,
    WS_TYPE_PONG,
    WS_TYPE_AUDIO,
    WS_ERROR_UPSTREAM,
    WS_KEY_SESSION_ID,
    WS_CLOSE_IDLE_CODE,
    WS_TYPE_TRANSCRIPT,
    WS_KEY_SESSION_INFO,
    WS_CLOSE_IDLE_REASON,
    WS_TYPE_SESSION_ENDED,
    WS_CLOSE_SESSION_REASON,
    WS_TYPE_SESSION_STARTED,
    WS_TYPE_SESSION_STOPPED,
    WS_CLOSE_CLIENT_REQUEST_CODE,
    WS_CLOSE_UPSTREAM_ERROR_CODE,
    WS_TYPE_SESSION_INFO_RESPONSE,
)

from .events import UpstreamMessage
from .bridge import UpstreamBridge
from .adapter import UpstreamCallbacks

logger = logging.getLogger(__name__)

REASON_CLIENT_DISCONNECT = "client_disconnect"
REASON_CLIENT_STOP = "client_stop"
REASON_UPSTREAM_CLOSED = "upstream_closed"
REASON_UPSTREAM_ERROR = "upstream_error"

_CLOSE_FRAMES: dict[str, tuple[int, str]] = {
    REASON_IDLE_TIMEOUT: (WS_CLOSE_IDLE_CODE, WS_CLOSE_IDLE_REASON),
    REASON_UPSTREAM_ERROR: (WS_CLOSE_UPSTREAM_ERROR_CODE, WS_CLOSE_SESSION_REASON),
}

# Marks an end_turn received while the upstream handshake was still in flight.
_END_TURN = None


class RelayHandler:
    """State machine for one relay session.

    Client messages arrive through the ``handle_*`` methods, sequentially from
    the connection's message loop. Upstream events arrive through the
    callbacks returned by ``callbacks()``, sequentially from the upstream
    receive task. ``close()`` is the single teardown path for every exit:
    client stop or disconnect, upstream close or error, idle eviction and
    shutdown.
    """

    def __init__(
        self,
        *,
        ws: WebSocket,
        session: Session,
        registry: SessionRegistry,
        bridge: UpstreamBridge,
        normalizer: AudioNormalizer,
        end_turn_policy: str = DEFAULT_END_TURN_POLICY,
        output_sample_rate: int = OUTPUT_SAMPLE_RATE_HZ,
        max_pending_audio: int = DEFAULT_MAX_PENDING_AUDIO_CHUNKS,
        input_mime_type: str = INPUT_MIME_TYPE,
    ) -> None:
        self._ws = ws
        self._session = session
        self._registry = registry
        self._bridge = bridge
        self._normalizer = normalizer
        self._end_turn_policy = end_turn_policy
        self._output_sample_rate = int(output_sample_rate)
        self._max_pending_audio = max(1, int(max_pending_audio))
        self._input_mime_type = input_mime_type

        self._pending: deque[str | None] = deque()
        self._transcode_task: asyncio.Task | None = None

        session.teardown = self.close

    @property
    def session(self) -> Session:
        return self._session

    @property
    def is_closed(self) -> bool:
        return self._session.state in TERMINAL_STATES

    def callbacks(self) -> UpstreamCallbacks:
        return UpstreamCallbacks(
            on_open=self._on_upstream_open,
            on_message=self._on_upstream_message,
            on_error=self._on_upstream_error,
            on_close=self._on_upstream_close,
        )

    async def start(self) -> bool:
        """Open the upstream conversation. Returns False if the session failed."""
        try:
            handle = await self._bridge.connect(self.callbacks())
        except UpstreamConnectionError as exc:
            logger.warning("session %s: upstream connect failed: %s", self._session.id, exc)
            await self._fail("Failed to initialize voice session")
            return False

        if self.is_closed:
            # Torn down while the handshake was in flight.
            with contextlib.suppress(Exception):
                await handle.close()
            return False

        self._session.upstream = handle
        if self._session.state == STATE_CONNECTED:
            await self._flush_pending()
        return True

    # Client -> upstream

    async def handle_audio_chunk(self, data: Any, mime_type: Any = None) -> None:
        if not self._session.is_active:
            return
        if not isinstance(data, str) or not data.strip():
            raise ProtocolError("audio_chunk requires non-empty base64 'data'")
        if mime_type is not None and not isinstance(mime_type, str):
            raise ProtocolError("audio_chunk 'mimeType' must be a string")

        raw = decode_base64_audio(data.strip())
        pcm_b64 = await self._normalize(raw, mime_type)
        if pcm_b64 is None or not self._session.is_active:
            return

        if self._session.state == STATE_CONNECTING or self._session.upstream is None:
            self._queue_pending(pcm_b64)
            return
        await self._forward_audio(pcm_b64)

    async def handle_end_turn(self) -> None:
        """Signal that the user finished speaking. Never closes the upstream."""
        if not self._session.is_active:
            return
        if self._end_turn_policy == END_TURN_POLICY_VAD:
            logger.debug("session %s: end_turn left to upstream voice activity detection", self._session.id)
            return
        if self._session.state == STATE_CONNECTING or self._session.upstream is None:
            self._queue_pending(_END_TURN)
            return
        await self._forward_end_turn()

    async def handle_ping(self) -> None:
        if not self._session.is_active:
            return
        await safe_send_json(self._ws, {WS_KEY_TYPE: WS_TYPE_PONG})

    async def handle_session_info(self) -> None:
        if not self._session.is_active:
            return
        await safe_send_json(
            self._ws,
            {WS_KEY_TYPE: WS_TYPE_SESSION_INFO_RESPONSE, WS_KEY_SESSION_INFO: self._session.info()},
        )

    async def handle_stop(self) -> None:
        if self.is_closed:
            return
        await safe_send_json(self._ws, {WS_KEY_TYPE: WS_TYPE_SESSION_STOPPED})
        await self.close(REASON_CLIENT_STOP)

    async def _normalize(self, raw: bytes, mime_type: str | None) -> str | None:
        task = asyncio.create_task(self._normalizer.normalize(raw, mime_type))
        self._transcode_task = task
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and self.is_closed and not (current is not None and current.cancelling()):
                logger.debug("session %s: transcode cancelled by teardown", self._session.id)
                return None
            raise
        finally:
            if self._transcode_task is task:
                self._transcode_task = None

    def _queue_pending(self, item: str | None) -> None:
        if len(self._pending) >= self._max_pending_audio:
            self._pending.popleft()
            logger.warning(
                "session %s: pending audio queue full (%s); dropped oldest chunk",
                self._session.id,
                self._max_pending_audio,
            )
        self._pending.append(item)

    async def _flush_pending(self) -> None:
        while self._pending and self._session.upstream is not None and self._session.is_active:
            item = self._pending.popleft()
            if item is _END_TURN:
                await self._forward_end_turn()
            else:
                await self._forward_audio(item)

    async def _forward_audio(self, pcm_b64: str) -> None:
        upstream = self._session.upstream
        if upstream is None:
            return
        try:
            await upstream.send_audio(pcm_b64, self._input_mime_type)
        except UpstreamConnectionError as exc:
            logger.warning("session %s: failed to forward audio: %s", self._session.id, exc)
            await self._fail("Upstream connection error")

    async def _forward_end_turn(self) -> None:
        upstream = self._session.upstream
        if upstream is None:
            return
        try:
            await upstream.send_turn_complete()
        except UpstreamConnectionError as exc:
            logger.warning("session %s: failed to signal end of turn: %s", self._session.id, exc)
            await self._fail("Upstream connection error")

    # Upstream -> client

    async def _on_upstream_open(self) -> None:
        if self.is_closed:
            return
        self._session.state = STATE_CONNECTED
        logger.info("session %s: upstream ready", self._session.id)
        await safe_send_json(
            self._ws,
            {WS_KEY_TYPE: WS_TYPE_SESSION_STARTED, WS_KEY_SESSION_ID: self._session.id},
        )
        await self._flush_pending()

    async def _on_upstream_message(self, message: UpstreamMessage) -> None:
        if self.is_closed:
            return

        if message.interrupted:
            dropped = len(self._session.audio_response_buffer)
            self._session.audio_response_buffer.clear()
            logger.info("session %s: model interrupted; dropped %s buffered chunk(s)", self._session.id, dropped)

        for text in message.user_texts:
            await self._send_transcript(text, is_user=True)
        for text in message.model_texts:
            await self._send_transcript(text, is_user=False)

        if message.audio_chunks:
            self._session.audio_response_buffer.extend(message.audio_chunks)

        if message.turn_complete:
            await self._flush_turn()

    async def _send_transcript(self, text: str, *, is_user: bool) -> None:
        await safe_send_json(self._ws, {WS_KEY_TYPE: WS_TYPE_TRANSCRIPT, "text": text, "isUser": is_user})

    async def _flush_turn(self) -> None:
        buffer = self._session.audio_response_buffer
        if not buffer:
            logger.debug("session %s: turn complete with no audio", self._session.id)
            return
        pcm = b"".join(buffer)
        buffer.clear()
        wav = frame_wav(pcm, self._output_sample_rate)
        await safe_send_json(
            self._ws,
            {WS_KEY_TYPE: WS_TYPE_AUDIO, "audio": base64.b64encode(wav).decode("ascii")},
        )

    async def _on_upstream_error(self, exc: BaseException) -> None:
        if self.is_closed:
            return
        logger.error("session %s: upstream error: %s", self._session.id, exc)
        await self._fail("Upstream connection error")

    async def _on_upstream_close(self, reason: str) -> None:
        if self.is_closed:
            return
        logger.info("session %s: upstream closed (%s)", self._session.id, reason or "no reason")
        await safe_send_json(self._ws, {WS_KEY_TYPE: WS_TYPE_SESSION_ENDED})
        await self.close(REASON_UPSTREAM_CLOSED)

    async def _fail(self, message: str) -> None:
        if self.is_closed:
            return
        self._session.state = STATE_ERROR
        await send_error(self._ws, message, WS_ERROR_UPSTREAM)
        await self.close(REASON_UPSTREAM_ERROR)

    # Teardown

    async def close(self, reason: str = REASON_CLIENT_DISCONNECT) -> None:
        """Tear the session down. Idempotent."""
        session = self._session
        if session.state in TERMINAL_STATES:
            return
        session.state = STATE_CLOSING
        logger.info("session %s: closing (reason=%s)", session.id, reason)

        task = self._transcode_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.wait({task})

        self._pending.clear()
        session.audio_response_buffer.clear()

        upstream = session.upstream
        if upstream is not None:
            try:
                await upstream.close()
            except Exception:
                logger.debug("session %s: upstream close failed", session.id, exc_info=True)

        if reason != REASON_CLIENT_DISCONNECT:
            code, close_reason = _CLOSE_FRAMES.get(reason, (WS_CLOSE_CLIENT_REQUEST_CODE, WS_CLOSE_SESSION_REASON))
            with contextlib.suppress(Exception):
                await self._ws.close(code=code, reason=close_reason)

        session.state = STATE_CLOSED
        await self._registry.remove(session.id)


__all__ = [
    "REASON_CLIENT_DISCONNECT",
    "REASON_CLIENT_STOP",
    "REASON_UPSTREAM_CLOSED",
    "REASON_UPSTREAM_ERROR",
    "RelayHandler",
]
