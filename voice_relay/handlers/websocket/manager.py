"""Primary WebSocket connection handler orchestration."""

from __future__ import annotations

import logging
import contextlib

from fastapi import WebSocket

from voice_relay.state import Session, RuntimeDeps
from voice_relay.realtime.relay import RelayHandler
from voice_relay.handlers.limits import SlidingWindowRateLimiter
from voice_relay.config.websocket import (
    WS_CLOSE_BUSY_CODE,
    WS_ERROR_AUTH_FAILED,
    WS_CLOSE_UNAUTHORIZED_CODE,
    WS_ERROR_SERVER_AT_CAPACITY,
)

from .errors import reject_connection
from .auth import authenticate_websocket
from .message_loop import run_message_loop

logger = logging.getLogger(__name__)


def _create_rate_limiter(runtime_deps: RuntimeDeps) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        limit=runtime_deps.settings.limits.ws_max_messages_per_window,
        window_seconds=runtime_deps.settings.limits.ws_message_window_seconds,
    )


def _create_relay(ws: WebSocket, runtime_deps: RuntimeDeps, session: Session) -> RelayHandler:
    settings = runtime_deps.settings
    return RelayHandler(
        ws=ws,
        session=session,
        registry=runtime_deps.registry,
        bridge=runtime_deps.upstream_bridge,
        normalizer=runtime_deps.normalizer,
        end_turn_policy=settings.upstream.end_turn_policy,
        output_sample_rate=settings.audio.output_sample_rate_hz,
        max_pending_audio=settings.limits.max_pending_audio_chunks,
    )


async def _prepare_connection(ws: WebSocket, runtime_deps: RuntimeDeps) -> bool:
    if not await authenticate_websocket(ws, expected_api_key=runtime_deps.settings.auth.api_key):
        await reject_connection(
            ws,
            error_code=WS_ERROR_AUTH_FAILED,
            message=(
                "Authentication required. Provide valid API key via 'api_key' query parameter or 'X-API-Key' header."
            ),
            close_code=WS_CLOSE_UNAUTHORIZED_CODE,
        )
        return False

    if not await runtime_deps.connections.connect(ws):
        await reject_connection(
            ws,
            error_code=WS_ERROR_SERVER_AT_CAPACITY,
            message="Server cannot accept new connections. Please try again later.",
            close_code=WS_CLOSE_BUSY_CODE,
        )
        return False

    try:
        await ws.accept()
    except Exception:
        with contextlib.suppress(Exception):
            await runtime_deps.connections.disconnect(ws)
        raise
    return True


async def handle_websocket_connection(ws: WebSocket, runtime_deps: RuntimeDeps) -> None:
    relay: RelayHandler | None = None
    admitted = False
    session_id: str | None = None
    try:
        if not await _prepare_connection(ws, runtime_deps):
            return
        admitted = True

        session = await runtime_deps.registry.create(ws)
        session_id = session.id
        relay = _create_relay(ws, runtime_deps, session)

        logger.info(
            "WebSocket connection accepted session_id=%s. Active: %s",
            session_id,
            runtime_deps.connections.get_connection_count(),
        )
        if not await relay.start():
            return

        await run_message_loop(ws, relay, _create_rate_limiter(runtime_deps))
    finally:
        if relay is not None:
            with contextlib.suppress(Exception):
                await relay.close()

        if admitted:
            with contextlib.suppress(Exception):
                await runtime_deps.connections.disconnect(ws)
            logger.info(
                "WebSocket connection closed session_id=%s. Active: %s",
                session_id,
                runtime_deps.connections.get_connection_count(),
            )


__all__ = ["handle_websocket_connection"]
