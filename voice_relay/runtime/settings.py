"""Environment parsing for runtime settings.

Env names and defaults live in `voice_relay/config/*`; this module resolves
them (after loading an optional `.env`) into the dataclasses of
`voice_relay.state.settings`.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

from voice_relay.config.secrets import ENV_RELAY_API_KEY, ENV_GEMINI_API_KEY
from voice_relay.config.session import (
    ENV_SESSION_TIMEOUT_S,
    DEFAULT_SESSION_TIMEOUT_S,
    ENV_SESSION_SWEEP_INTERVAL_S,
    DEFAULT_SESSION_SWEEP_INTERVAL_S,
)
from voice_relay.state.settings import (
    AppSettings,
    AuthSettings,
    AudioSettings,
    LimitsSettings,
    SessionSettings,
    UpstreamSettings,
)
from voice_relay.config.audio import (
    ENV_FFMPEG_PATH,
    DEFAULT_FFMPEG_PATH,
    INPUT_SAMPLE_RATE_HZ,
    OUTPUT_SAMPLE_RATE_HZ,
    ENV_TRANSCODER_TIMEOUT_S,
    DEFAULT_TRANSCODER_TIMEOUT_S,
)
from voice_relay.config.limits import (
    ENV_MAX_PENDING_AUDIO_CHUNKS,
    ENV_WS_MESSAGE_WINDOW_SECONDS,
    ENV_MAX_CONCURRENT_CONNECTIONS,
    ENV_WS_MAX_MESSAGES_PER_WINDOW,
    DEFAULT_MAX_PENDING_AUDIO_CHUNKS,
    DEFAULT_WS_MESSAGE_WINDOW_SECONDS,
    DEFAULT_MAX_CONCURRENT_CONNECTIONS,
    DEFAULT_WS_MAX_MESSAGES_PER_WINDOW,
)
from voice_relay.config.upstream import (
    END_TURN_POLICIES,
    ENV_END_TURN_POLICY,
    ENV_GEMINI_LIVE_URL,
    ENV_GEMINI_LIVE_MODEL,
    ENV_SYSTEM_INSTRUCTION,
    DEFAULT_END_TURN_POLICY,
    DEFAULT_GEMINI_LIVE_URL,
    DEFAULT_GEMINI_LIVE_MODEL,
    DEFAULT_SYSTEM_INSTRUCTION,
    ENV_UPSTREAM_CONNECT_TIMEOUT_S,
    DEFAULT_UPSTREAM_CONNECT_TIMEOUT_S,
)


def _str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip()
    return v if v else default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except Exception:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except Exception:
        return default


def _validate_end_turn_policy(policy: str) -> str:
    normalized = policy.strip().lower()
    if normalized not in END_TURN_POLICIES:
        raise ValueError(f"{ENV_END_TURN_POLICY} must be one of {sorted(END_TURN_POLICIES)}, got {policy!r}")
    return normalized


def _load_auth_settings() -> AuthSettings:
    return AuthSettings(api_key=(os.getenv(ENV_RELAY_API_KEY) or "").strip())


def _load_limits_settings() -> LimitsSettings:
    return LimitsSettings(
        max_concurrent_connections=_int_env(ENV_MAX_CONCURRENT_CONNECTIONS, DEFAULT_MAX_CONCURRENT_CONNECTIONS),
        ws_message_window_seconds=_float_env(ENV_WS_MESSAGE_WINDOW_SECONDS, DEFAULT_WS_MESSAGE_WINDOW_SECONDS),
        ws_max_messages_per_window=_int_env(ENV_WS_MAX_MESSAGES_PER_WINDOW, DEFAULT_WS_MAX_MESSAGES_PER_WINDOW),
        max_pending_audio_chunks=_int_env(ENV_MAX_PENDING_AUDIO_CHUNKS, DEFAULT_MAX_PENDING_AUDIO_CHUNKS),
    )


def _load_session_settings() -> SessionSettings:
    timeout_s = _float_env(ENV_SESSION_TIMEOUT_S, DEFAULT_SESSION_TIMEOUT_S)
    sweep_s = _float_env(ENV_SESSION_SWEEP_INTERVAL_S, DEFAULT_SESSION_SWEEP_INTERVAL_S)
    if timeout_s <= 0:
        raise ValueError(f"{ENV_SESSION_TIMEOUT_S} must be > 0")
    if sweep_s <= 0:
        raise ValueError(f"{ENV_SESSION_SWEEP_INTERVAL_S} must be > 0")
    return SessionSettings(timeout_s=timeout_s, sweep_interval_s=sweep_s)


def _load_audio_settings() -> AudioSettings:
    return AudioSettings(
        ffmpeg_path=_str_env(ENV_FFMPEG_PATH, DEFAULT_FFMPEG_PATH),
        transcoder_timeout_s=_float_env(ENV_TRANSCODER_TIMEOUT_S, DEFAULT_TRANSCODER_TIMEOUT_S),
        input_sample_rate_hz=INPUT_SAMPLE_RATE_HZ,
        output_sample_rate_hz=OUTPUT_SAMPLE_RATE_HZ,
    )


def _load_upstream_settings() -> UpstreamSettings:
    return UpstreamSettings(
        api_key=(os.getenv(ENV_GEMINI_API_KEY) or "").strip(),
        model=_str_env(ENV_GEMINI_LIVE_MODEL, DEFAULT_GEMINI_LIVE_MODEL),
        url=_str_env(ENV_GEMINI_LIVE_URL, DEFAULT_GEMINI_LIVE_URL),
        system_instruction=_str_env(ENV_SYSTEM_INSTRUCTION, DEFAULT_SYSTEM_INSTRUCTION),
        end_turn_policy=_validate_end_turn_policy(_str_env(ENV_END_TURN_POLICY, DEFAULT_END_TURN_POLICY)),
        connect_timeout_s=_float_env(ENV_UPSTREAM_CONNECT_TIMEOUT_S, DEFAULT_UPSTREAM_CONNECT_TIMEOUT_S),
    )


def load_settings(*, dotenv: bool = True) -> AppSettings:
    if dotenv:
        # Real environment variables win over `.env` entries.
        load_dotenv(override=False)
    return AppSettings(
        auth=_load_auth_settings(),
        limits=_load_limits_settings(),
        session=_load_session_settings(),
        audio=_load_audio_settings(),
        upstream=_load_upstream_settings(),
    )


__all__ = ["load_settings"]
