"""Typed runtime state objects for dependency wiring."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from voice_relay.state.settings import AppSettings
    from voice_relay.realtime.bridge import UpstreamBridge
    from voice_relay.audio.normalizer import AudioNormalizer
    from voice_relay.handlers.registry import SessionRegistry
    from voice_relay.handlers.connections import ConnectionManager


@dataclass(slots=True)
class RuntimeDeps:
    connections: ConnectionManager
    registry: SessionRegistry
    upstream_bridge: UpstreamBridge
    normalizer: AudioNormalizer
    settings: AppSettings

    async def shutdown(self) -> None:
        try:
            await self.registry.stop()
            closed = await self.registry.close_all()
            if closed:
                logger.info("runtime shutdown closed %s live session(s)", closed)
        except Exception:
            logger.exception("runtime shutdown failed")


__all__ = ["RuntimeDeps"]
