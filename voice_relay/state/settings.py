"""Runtime settings (dataclasses only)."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AuthSettings:
    api_key: str


@dataclass(frozen=True, slots=True)
class LimitsSettings:
    max_concurrent_connections: int
    ws_message_window_seconds: float
    ws_max_messages_per_window: int
    max_pending_audio_chunks: int


@dataclass(frozen=True, slots=True)
class SessionSettings:
    timeout_s: float
    sweep_interval_s: float


@dataclass(frozen=True, slots=True)
class AudioSettings:
    ffmpeg_path: str
    transcoder_timeout_s: float
    input_sample_rate_hz: int
    output_sample_rate_hz: int


@dataclass(frozen=True, slots=True)
class UpstreamSettings:
    api_key: str
    model: str
    url: str
    system_instruction: str
    end_turn_policy: str
    connect_timeout_s: float


@dataclass(frozen=True, slots=True)
class AppSettings:
    auth: AuthSettings
    limits: LimitsSettings
    session: SessionSettings
    audio: AudioSettings
    upstream: UpstreamSettings


__all__ = [
    "AppSettings",
    "AudioSettings",
    "AuthSettings",
    "LimitsSettings",
    "SessionSettings",
    "UpstreamSettings",
]
