"""Shared error types for the live voice relay."""

from __future__ import annotations

from dataclasses import dataclass


class RelayError(Exception):
    """Base class for relay errors."""


class UpstreamConnectionError(RelayError, ConnectionError):
    """Upstream model unreachable or its handshake failed. Fatal to the session."""


class AudioProcessingError(RelayError):
    """Transcoder failure or malformed/empty audio. Recovered per chunk."""


class ProtocolError(RelayError):
    """Malformed or unknown client message. Recovered per message."""


class SessionTimeoutError(RelayError, TimeoutError):
    """Session evicted after the idle window elapsed."""


@dataclass(frozen=True, slots=True)
class RateLimitError(Exception):
    """Raised when a sliding-window rate limiter is saturated."""

    retry_in: float
    limit: int
    window_seconds: float


__all__ = [
    "AudioProcessingError",
    "ProtocolError",
    "RateLimitError",
    "RelayError",
    "SessionTimeoutError",
    "UpstreamConnectionError",
]
