"""WebSocket receive loop for the live voice relay."""

from __future__ import annotations

import asyncio
import logging

from fastapi import WebSocket, WebSocketDisconnect

from voice_relay.realtime.relay import RelayHandler
from voice_relay.handlers.limits import SlidingWindowRateLimiter
from voice_relay.errors import ProtocolError, AudioProcessingError
from voice_relay.config.websocket import (
    WS_KEY_TYPE,
    WS_RECEIVE_TICK_S,
    WS_ERROR_INVALID_MESSAGE,
    WS_ERROR_INVALID_PAYLOAD,
    WS_ERROR_AUDIO_PROCESSING,
)

from .dispatch import HANDLERS
from .errors import send_error
from .limits import consume_limiter, select_rate_limiter
from .parser import parse_client_message, split_client_frames

logger = logging.getLogger(__name__)


async def _recv_frame(ws: WebSocket, relay: RelayHandler) -> tuple[str | None, bool]:
    """Wait one tick for a frame. Returns (text, should_exit)."""
    try:
        message = await asyncio.wait_for(ws.receive(), timeout=WS_RECEIVE_TICK_S)
    except TimeoutError:
        return None, relay.is_closed

    if message.get("type") == "websocket.disconnect":
        raise WebSocketDisconnect(code=message.get("code", 1000))

    text = message.get("text")
    if text is None:
        data = message.get("bytes")
        if not data:
            return None, False
        text = data.decode("utf-8", errors="replace")
    return text, False


async def _handle_fragment(ws: WebSocket, relay: RelayHandler, limiter: SlidingWindowRateLimiter, raw: str) -> None:
    try:
        msg = parse_client_message(raw)
    except ProtocolError as exc:
        logger.warning("session %s: ignoring malformed client message: %s", relay.session.id, exc)
        return

    msg_type = msg[WS_KEY_TYPE]
    selected = select_rate_limiter(msg_type, limiter)
    if selected is not None and not await consume_limiter(ws, selected, msg_type):
        return

    handler = HANDLERS.get(msg_type)
    if handler is None:
        logger.warning("session %s: unknown client message type %r", relay.session.id, msg_type)
        await send_error(ws, f"message type '{msg_type}' is not supported", WS_ERROR_INVALID_MESSAGE)
        return

    try:
        await handler(relay, msg)
    except ProtocolError as exc:
        logger.warning("session %s: invalid %s payload: %s", relay.session.id, msg_type, exc)
        await send_error(ws, str(exc), WS_ERROR_INVALID_PAYLOAD)
    except AudioProcessingError as exc:
        logger.warning("session %s: audio processing failed: %s", relay.session.id, exc)
        await send_error(ws, "Audio processing error", WS_ERROR_AUDIO_PROCESSING)


async def run_message_loop(ws: WebSocket, relay: RelayHandler, limiter: SlidingWindowRateLimiter) -> None:
    """Process client frames until the client leaves or the session is torn down."""
    try:
        while True:
            raw, should_exit = await _recv_frame(ws, relay)
            if should_exit or relay.is_closed:
                return
            if raw is None:
                continue
            if not relay.session.is_active:
                logger.debug("session %s: dropping frame in state %s", relay.session.id, relay.session.state)
                continue

            relay.session.touch()

            for fragment in split_client_frames(raw):
                await _handle_fragment(ws, relay, limiter, fragment)
                if relay.is_closed:
                    return
    except WebSocketDisconnect:
        return
    except RuntimeError:
        # Starlette raises once the socket is closed from our side.
        if relay.is_closed:
            return
        raise


__all__ = ["run_message_loop"]
