"""Admission control and rate limit configuration (env names and defaults)."""

from __future__ import annotations

ENV_MAX_CONCURRENT_CONNECTIONS = "MAX_CONCURRENT_CONNECTIONS"
ENV_WS_MESSAGE_WINDOW_SECONDS = "WS_MESSAGE_WINDOW_SECONDS"
ENV_WS_MAX_MESSAGES_PER_WINDOW = "WS_MAX_MESSAGES_PER_WINDOW"
ENV_MAX_PENDING_AUDIO_CHUNKS = "MAX_PENDING_AUDIO_CHUNKS"

DEFAULT_MAX_CONCURRENT_CONNECTIONS = 100
DEFAULT_WS_MESSAGE_WINDOW_SECONDS = 60.0
# Clients streaming 100ms chunks send ~600 audio_chunk messages a minute.
DEFAULT_WS_MAX_MESSAGES_PER_WINDOW = 3000
# Audio received while the upstream handshake is still in flight.
DEFAULT_MAX_PENDING_AUDIO_CHUNKS = 200

__all__ = [
    "ENV_MAX_CONCURRENT_CONNECTIONS",
    "ENV_WS_MESSAGE_WINDOW_SECONDS",
    "ENV_WS_MAX_MESSAGES_PER_WINDOW",
    "ENV_MAX_PENDING_AUDIO_CHUNKS",
    "DEFAULT_MAX_CONCURRENT_CONNECTIONS",
    "DEFAULT_WS_MESSAGE_WINDOW_SECONDS",
    "DEFAULT_WS_MAX_MESSAGES_PER_WINDOW",
    "DEFAULT_MAX_PENDING_AUDIO_CHUNKS",
]
