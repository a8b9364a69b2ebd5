"""Adapter between relay sessions and the Gemini Live bidirectional WebSocket."""

from __future__ import annotations

import asyncio
import logging
import contextlib
from typing import Any, Protocol
from dataclasses import dataclass
from collections.abc import Callable, Awaitable

import orjson
import websockets
from websockets.exceptions import InvalidURI, ConnectionClosed, InvalidHandshake

from voice_relay.config.audio import INPUT_MIME_TYPE
from voice_relay.config.upstream import UPSTREAM_RESPONSE_MODALITY
from voice_relay.errors import ProtocolError, UpstreamConnectionError

from .events import UpstreamMessage, parse_upstream_message

logger = logging.getLogger(__name__)

OnOpenFn = Callable[[], Awaitable[None]]
OnMessageFn = Callable[[UpstreamMessage], Awaitable[None]]
OnErrorFn = Callable[[BaseException], Awaitable[None]]
OnCloseFn = Callable[[str], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class UpstreamCallbacks:
    on_open: OnOpenFn
    on_message: OnMessageFn
    on_error: OnErrorFn
    on_close: OnCloseFn


class UpstreamHandle(Protocol):
    async def send_audio(self, pcm_b64: str, mime_type: str = INPUT_MIME_TYPE) -> None: ...

    async def send_turn_complete(self) -> None: ...

    async def close(self) -> None: ...


def build_setup_message(*, model: str, system_instruction: str) -> dict[str, Any]:
    model_name = model if model.startswith("models/") else f"models/{model}"
    setup: dict[str, Any] = {
        "model": model_name,
        "generationConfig": {"responseModalities": [UPSTREAM_RESPONSE_MODALITY]},
        "inputAudioTranscription": {},
        "outputAudioTranscription": {},
    }
    if system_instruction:
        setup["systemInstruction"] = {"parts": [{"text": system_instruction}]}
    return {"setup": setup}


class GeminiLiveClient:
    """One upstream live-model conversation.

    Inbound frames are read by a single receive task, so callbacks fire
    sequentially and in arrival order. ``on_open`` fires once the upstream
    acknowledges the setup message. Exactly one of ``on_error``/``on_close``
    fires when the connection ends, unless ``close()`` was called first.
    """

    def __init__(
        self,
        *,
        url: str,
        api_key: str,
        model: str,
        system_instruction: str,
        callbacks: UpstreamCallbacks,
        connect_timeout_s: float = 15.0,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._model = model
        self._system_instruction = system_instruction
        self._callbacks = callbacks
        self._connect_timeout_s = float(connect_timeout_s)

        self._ws: Any = None
        self._recv_task: asyncio.Task | None = None
        self._opened = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    def _uri(self) -> str:
        sep = "&" if "?" in self._url else "?"
        return f"{self._url}{sep}key={self._api_key}"

    async def connect(self) -> None:
        try:
            self._ws = await websockets.connect(
                self._uri(),
                open_timeout=self._connect_timeout_s,
                max_size=None,
            )
        except (OSError, TimeoutError, InvalidURI, InvalidHandshake) as exc:
            raise UpstreamConnectionError(f"failed to connect to upstream: {exc}") from exc

        setup = build_setup_message(model=self._model, system_instruction=self._system_instruction)
        try:
            await self._ws.send(orjson.dumps(setup).decode("utf-8"))
        except ConnectionClosed as exc:
            with contextlib.suppress(Exception):
                await self._ws.close()
            raise UpstreamConnectionError(f"upstream closed during setup: {exc}") from exc

        self._recv_task = asyncio.create_task(self._receive_loop())
        logger.info("upstream connected model=%s", self._model)

    async def send_audio(self, pcm_b64: str, mime_type: str = INPUT_MIME_TYPE) -> None:
        await self._send({"realtimeInput": {"audio": {"data": pcm_b64, "mimeType": mime_type}}})

    async def send_turn_complete(self) -> None:
        await self._send({"realtimeInput": {"audioStreamEnd": True}})

    async def _send(self, payload: dict[str, Any]) -> None:
        if self._closed or self._ws is None:
            raise UpstreamConnectionError("upstream connection is closed")
        try:
            await self._ws.send(orjson.dumps(payload).decode("utf-8"))
        except ConnectionClosed as exc:
            raise UpstreamConnectionError(f"upstream connection lost: {exc}") from exc

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = parse_upstream_message(raw)
        except ProtocolError as exc:
            logger.warning("dropping malformed upstream frame: %s", exc)
            return

        if message.setup_complete and not self._opened:
            self._opened = True
            await self._callbacks.on_open()
        if message.go_away:
            logger.info("upstream announced it will disconnect soon")
        if message.has_content and not self._closed:
            await self._callbacks.on_message(message)

    async def _receive_loop(self) -> None:
        ws = self._ws
        try:
            async for raw in ws:
                if self._closed:
                    return
                await self._dispatch(raw)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as exc:
            if not self._closed:
                await self._callbacks.on_error(UpstreamConnectionError(f"upstream connection lost: {exc}"))
            return
        except Exception as exc:
            if not self._closed:
                logger.exception("upstream receive loop failed")
                await self._callbacks.on_error(exc)
            return

        if self._closed:
            return
        if not self._opened:
            await self._callbacks.on_error(
                UpstreamConnectionError(f"upstream closed before setup completed: {ws.close_reason or ws.close_code}")
            )
            return
        await self._callbacks.on_close(ws.close_reason or "")

    async def close(self) -> None:
        """Idempotent. Safe to call from inside an upstream callback."""
        if self._closed:
            return
        self._closed = True

        task = self._recv_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.wait({task}, timeout=self._connect_timeout_s)

        if self._ws is not None:
            with contextlib.suppress(Exception):
                await self._ws.close()
        logger.debug("upstream connection closed model=%s", self._model)


__all__ = [
    "GeminiLiveClient",
    "UpstreamCallbacks",
    "UpstreamHandle",
    "build_setup_message",
]
