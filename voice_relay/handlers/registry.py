"""In-memory registry of live relay sessions with idle eviction."""

from __future__ import annotations

import time
import uuid
import asyncio
import logging
import contextlib
from typing import Any
from collections.abc import Callable

from voice_relay.state.session import Session
from voice_relay.errors import SessionTimeoutError
from voice_relay.config.session import (
    SESSION_ID_PREFIX,
    DEFAULT_SESSION_TIMEOUT_S,
    DEFAULT_SESSION_SWEEP_INTERVAL_S,
)

logger = logging.getLogger(__name__)

TimeFn = Callable[[], float]

REASON_IDLE_TIMEOUT = "idle_timeout"
REASON_SHUTDOWN = "shutdown"


def new_session_id(now: float | None = None) -> str:
    ms = int((time.time() if now is None else now) * 1000)
    return f"{SESSION_ID_PREFIX}_{ms}_{uuid.uuid4().hex[:9]}"


class SessionRegistry:
    """Owns every live session, keyed by id.

    Eviction and shutdown route through each session's ``teardown`` hook, the
    same path an explicit close takes, so upstream handles are always released.
    """

    def __init__(
        self,
        *,
        timeout_s: float = DEFAULT_SESSION_TIMEOUT_S,
        sweep_interval_s: float = DEFAULT_SESSION_SWEEP_INTERVAL_S,
        now_fn: TimeFn | None = None,
    ) -> None:
        self._timeout_s = float(timeout_s)
        self._sweep_interval_s = float(sweep_interval_s)
        self._now = now_fn or time.time
        self._lock = asyncio.Lock()
        self._sessions: dict[str, Session] = {}
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    async def create(self, client: Any) -> Session:
        now = self._now()
        async with self._lock:
            session_id = new_session_id(now)
            while session_id in self._sessions:
                session_id = new_session_id(now)
            session = Session(id=session_id, client=client, created_at=now, last_activity=now)
            self._sessions[session_id] = session
        logger.info("session created id=%s active=%s", session_id, len(self._sessions))
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    async def remove(self, session_id: str) -> Session | None:
        """Idempotent: removing an unknown id is a no-op."""
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.info("session removed id=%s active=%s", session_id, len(self._sessions))
        return session

    def count(self) -> int:
        return len(self._sessions)

    def all_info(self) -> list[dict[str, Any]]:
        now = self._now()
        return [session.info(now) for session in list(self._sessions.values())]

    async def _teardown(self, session: Session, reason: str) -> None:
        try:
            if session.teardown is not None:
                await session.teardown(reason)
        except Exception:
            logger.exception("teardown failed for session %s", session.id)
        finally:
            await self.remove(session.id)

    async def sweep_once(self) -> int:
        now = self._now()
        async with self._lock:
            expired = [s for s in self._sessions.values() if (now - s.last_activity) > self._timeout_s]

        # Teardown awaits network I/O and calls back into remove(); it runs outside the lock.
        for session in expired:
            err = SessionTimeoutError(f"session {session.id} idle for {now - session.last_activity:.0f}s")
            logger.info("evicting idle session: %s", err)
            await self._teardown(session, REASON_IDLE_TIMEOUT)
        return len(expired)

    async def close_all(self, reason: str = REASON_SHUTDOWN) -> int:
        async with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            await self._teardown(session, reason)
        return len(sessions)

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._stop_event.clear()
            self._task = asyncio.create_task(self._sweep_loop())
        return self._task

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await self._task
        self._task = None

    async def _sweep_loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                await asyncio.sleep(self._sweep_interval_s)
                if self._stop_event.is_set():
                    break
                try:
                    evicted = await self.sweep_once()
                except Exception:
                    logger.exception("session sweep failed")
                    continue
                if evicted:
                    logger.info("session sweep evicted %s session(s); active=%s", evicted, self.count())
        except asyncio.CancelledError:
            return


__all__ = ["REASON_IDLE_TIMEOUT", "REASON_SHUTDOWN", "SessionRegistry", "new_session_id"]
