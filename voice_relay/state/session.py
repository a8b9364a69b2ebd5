"""Per-connection relay session state."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal
from collections.abc import Callable, Awaitable
from dataclasses import field, dataclass

if TYPE_CHECKING:
    from voice_relay.realtime.adapter import UpstreamHandle

SessionStateName = Literal["connecting", "connected", "error", "closing", "closed"]

STATE_CONNECTING: SessionStateName = "connecting"
STATE_CONNECTED: SessionStateName = "connected"
STATE_ERROR: SessionStateName = "error"
STATE_CLOSING: SessionStateName = "closing"
STATE_CLOSED: SessionStateName = "closed"

# Client audio and control messages are only processed in these states.
ACTIVE_STATES = frozenset({STATE_CONNECTING, STATE_CONNECTED})
TERMINAL_STATES = frozenset({STATE_CLOSING, STATE_CLOSED})

TeardownFn = Callable[[str], Awaitable[None]]


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass(slots=True, eq=False)
class Session:
    id: str
    client: Any
    state: SessionStateName = STATE_CONNECTING
    upstream: UpstreamHandle | None = None
    audio_response_buffer: list[bytes] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    teardown: TeardownFn | None = None

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    def touch(self, now: float | None = None) -> None:
        self.last_activity = time.time() if now is None else now

    def info(self, now: float | None = None) -> dict[str, Any]:
        now = time.time() if now is None else now
        return {
            "id": self.id,
            "state": self.state,
            "isActive": self.is_active,
            "createdAt": _iso(self.created_at),
            "lastActivity": _iso(self.last_activity),
            "uptime": int(max(0.0, now - self.created_at) * 1000),
        }


__all__ = [
    "ACTIVE_STATES",
    "STATE_CLOSED",
    "STATE_CLOSING",
    "STATE_CONNECTED",
    "STATE_CONNECTING",
    "STATE_ERROR",
    "TERMINAL_STATES",
    "Session",
    "SessionStateName",
    "TeardownFn",
]
