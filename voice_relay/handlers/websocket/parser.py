"""Client frame splitting and message validation."""

from __future__ import annotations

from typing import Any

import orjson

from voice_relay.errors import ProtocolError
from voice_relay.config.websocket import WS_KEY_TYPE


def _object_end(raw: str, start: int) -> int | None:
    """Index just past the object opened at ``start``, or None if it never closes."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(raw)):
        ch = raw[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def _resync(raw: str, start: int) -> int:
    """End of a broken object at ``start``: the next ``{`` that opens a balanced one."""
    nxt = raw.find("{", start + 1)
    while nxt >= 0:
        if _object_end(raw, nxt) is not None:
            return nxt
        nxt = raw.find("{", nxt + 1)
    return len(raw)


def split_client_frames(raw: str) -> list[str]:
    """Split one transport frame into candidate JSON objects.

    Clients may coalesce several messages into a single frame (``{...}{...}``).
    Text outside any object is returned as its own fragment so the caller can
    report it. An object that never closes (stray quote or brace) ends where the
    next well-formed object begins, so a malformed fragment never hides its
    neighbours.
    """
    fragments: list[str] = []
    i, n = 0, len(raw)
    while i < n:
        if raw[i].isspace():
            i += 1
            continue
        if raw[i] != "{":
            nxt = raw.find("{", i)
            end = n if nxt < 0 else nxt
            fragments.append(raw[i:end].strip())
            i = end
            continue
        end = _object_end(raw, i)
        if end is None:
            end = _resync(raw, i)
            fragments.append(raw[i:end].strip())
        else:
            fragments.append(raw[i:end])
        i = end
    return fragments


def parse_client_message(raw: str) -> dict[str, Any]:
    try:
        msg = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise ProtocolError(f"invalid JSON: {exc}") from exc

    if not isinstance(msg, dict):
        raise ProtocolError("message must be a JSON object")

    msg_type = msg.get(WS_KEY_TYPE)
    if not isinstance(msg_type, str) or not msg_type.strip():
        raise ProtocolError("message missing non-empty 'type'")

    msg[WS_KEY_TYPE] = msg_type.strip()
    return msg


__all__ = ["parse_client_message", "split_client_frames"]
