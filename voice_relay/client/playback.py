"""Sequential playback of WAV clips received from the relay."""

from __future__ import annotations

import asyncio
import logging
import contextlib
from typing import Protocol
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Player(Protocol):
    async def play(self, wav: bytes) -> None:
        """Play one clip; return once it has finished."""
        ...

    async def stop(self) -> None: ...

    async def release(self) -> None: ...


class PlaybackQueue:
    """FIFO of WAV clips, played one at a time.

    The next clip starts only after the previous one finishes or fails.
    ``speaking`` is True while the queue is draining.
    """

    def __init__(self, player: Player | None, *, on_speaking: Callable[[bool], None] | None = None) -> None:
        self._player = player
        self._on_speaking = on_speaking
        self._clips: deque[bytes] = deque()
        self._task: asyncio.Task | None = None
        self._speaking = False

    @property
    def speaking(self) -> bool:
        return self._speaking

    @property
    def pending(self) -> int:
        return len(self._clips)

    def _set_speaking(self, value: bool) -> None:
        if self._speaking == value:
            return
        self._speaking = value
        if self._on_speaking is not None:
            self._on_speaking(value)

    def enqueue(self, wav: bytes) -> None:
        self._clips.append(wav)
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        self._set_speaking(True)
        try:
            while self._clips:
                clip = self._clips.popleft()
                if self._player is None:
                    continue
                try:
                    await self._player.play(clip)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.warning("playback failed; skipping clip", exc_info=True)
        finally:
            self._set_speaking(False)

    async def wait_idle(self) -> None:
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task})

    async def stop(self) -> None:
        self._clips.clear()
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        if self._player is not None:
            with contextlib.suppress(Exception):
                await self._player.stop()
        self._set_speaking(False)

    async def release(self) -> None:
        await self.stop()
        if self._player is not None:
            with contextlib.suppress(Exception):
                await self._player.release()


__all__ = ["PlaybackQueue", "Player"]
