"""Rate limiting utilities for WebSocket message handling."""

from __future__ import annotations

import math
from typing import Any

from fastapi import WebSocket

from voice_relay.errors import RateLimitError
from voice_relay.handlers.limits import SlidingWindowRateLimiter
from voice_relay.config.websocket import WS_TYPE_PING, WS_TYPE_STOP, WS_ERROR_RATE_LIMITED

from .errors import send_error

# Liveness and teardown must never be throttled.
_EXEMPT_TYPES = frozenset({WS_TYPE_PING, WS_TYPE_STOP})


def select_rate_limiter(
    msg_type: str,
    message_limiter: SlidingWindowRateLimiter,
) -> SlidingWindowRateLimiter | None:
    if msg_type in _EXEMPT_TYPES:
        return None
    return message_limiter


async def consume_limiter(ws: WebSocket, limiter: SlidingWindowRateLimiter, msg_type: str) -> bool:
    try:
        limiter.consume()
    except RateLimitError as exc:
        retry_in_s = int(max(1, math.ceil(float(exc.retry_in)))) if exc.retry_in else 1
        details: dict[str, Any] = {
            "retry_in": retry_in_s,
            "limit": limiter.limit,
            "window_seconds": int(limiter.window_seconds),
            "type": msg_type,
        }
        await send_error(
            ws,
            f"message rate limit: at most {limiter.limit} per {int(limiter.window_seconds)} seconds; "
            f"retry in {retry_in_s} seconds",
            WS_ERROR_RATE_LIMITED,
            details=details,
        )
        return False
    return True


__all__ = ["consume_limiter", "select_rate_limiter"]
