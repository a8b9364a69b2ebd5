"""Factory for upstream live-model connections."""

from __future__ import annotations

from voice_relay.state.settings import UpstreamSettings
from voice_relay.errors import UpstreamConnectionError

from .adapter import UpstreamHandle, GeminiLiveClient, UpstreamCallbacks


class UpstreamBridge:
    def __init__(self, *, settings: UpstreamSettings) -> None:
        self._settings = settings

    async def connect(self, callbacks: UpstreamCallbacks) -> UpstreamHandle:
        if not self._settings.api_key:
            raise UpstreamConnectionError("upstream API key is not configured")
        client = GeminiLiveClient(
            url=self._settings.url,
            api_key=self._settings.api_key,
            model=self._settings.model,
            system_instruction=self._settings.system_instruction,
            callbacks=callbacks,
            connect_timeout_s=self._settings.connect_timeout_s,
        )
        await client.connect()
        return client


__all__ = ["UpstreamBridge"]
