"""Dispatch table for client -> relay messages."""

from __future__ import annotations

from typing import Any
from collections.abc import Callable, Awaitable

from voice_relay.realtime.relay import RelayHandler
from voice_relay.config.websocket import (
    WS_KEY_DATA,
    WS_TYPE_PING,
    WS_TYPE_STOP,
    WS_KEY_MIME_TYPE,
    WS_TYPE_END_TURN,
    WS_TYPE_AUDIO_CHUNK,
    WS_TYPE_SESSION_INFO,
)

HandlerFn = Callable[[RelayHandler, dict[str, Any]], Awaitable[None]]


async def _handle_audio_chunk(relay: RelayHandler, msg: dict[str, Any]) -> None:
    await relay.handle_audio_chunk(msg.get(WS_KEY_DATA), msg.get(WS_KEY_MIME_TYPE))


async def _handle_end_turn(relay: RelayHandler, _msg: dict[str, Any]) -> None:
    await relay.handle_end_turn()


async def _handle_ping(relay: RelayHandler, _msg: dict[str, Any]) -> None:
    await relay.handle_ping()


async def _handle_session_info(relay: RelayHandler, _msg: dict[str, Any]) -> None:
    await relay.handle_session_info()


async def _handle_stop(relay: RelayHandler, _msg: dict[str, Any]) -> None:
    await relay.handle_stop()


HANDLERS: dict[str, HandlerFn] = {
    WS_TYPE_AUDIO_CHUNK: _handle_audio_chunk,
    WS_TYPE_END_TURN: _handle_end_turn,
    WS_TYPE_PING: _handle_ping,
    WS_TYPE_SESSION_INFO: _handle_session_info,
    WS_TYPE_STOP: _handle_stop,
}

__all__ = ["HANDLERS", "HandlerFn"]
