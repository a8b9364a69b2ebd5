"""Send helpers for relay -> client JSON messages."""

from __future__ import annotations

import logging
from typing import Any

import orjson
from fastapi import WebSocket, WebSocketDisconnect

from voice_relay.config.websocket import WS_KEY_TYPE, WS_TYPE_ERROR, WS_KEY_MESSAGE

logger = logging.getLogger(__name__)


def build_error_message(message: str, code: str | None = None, *, details: dict[str, Any] | None = None) -> dict[str, Any]:
    data: dict[str, Any] = {WS_KEY_TYPE: WS_TYPE_ERROR, WS_KEY_MESSAGE: message}
    if code:
        data["code"] = code
    if details:
        data["details"] = dict(details)
    return data


async def safe_send_text(ws: WebSocket, text: str) -> bool:
    try:
        await ws.send_text(text)
    except WebSocketDisconnect:
        return False
    except Exception:
        logger.debug("WebSocket send failed", exc_info=True)
        return False
    return True


async def safe_send_json(ws: WebSocket, data: dict[str, Any]) -> bool:
    return await safe_send_text(ws, orjson.dumps(data).decode("utf-8"))


async def send_error(
    ws: WebSocket,
    message: str,
    code: str | None = None,
    *,
    details: dict[str, Any] | None = None,
) -> bool:
    return await safe_send_json(ws, build_error_message(message, code, details=details))


async def reject_connection(
    ws: WebSocket,
    *,
    error_code: str,
    message: str,
    close_code: int,
) -> None:
    # Accept so we can send a structured error, then close.
    try:
        await ws.accept()
    except Exception:
        return
    await send_error(ws, message, error_code)
    try:
        await ws.close(code=close_code, reason=message)
    except Exception:
        return


__all__ = [
    "build_error_message",
    "reject_connection",
    "safe_send_json",
    "safe_send_text",
    "send_error",
]
