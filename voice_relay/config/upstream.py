"""Upstream live model configuration (env names and defaults)."""

from __future__ import annotations

ENV_GEMINI_LIVE_MODEL = "GEMINI_LIVE_MODEL"
ENV_GEMINI_LIVE_URL = "GEMINI_LIVE_URL"
ENV_SYSTEM_INSTRUCTION = "SYSTEM_INSTRUCTION"
ENV_END_TURN_POLICY = "END_TURN_POLICY"
ENV_UPSTREAM_CONNECT_TIMEOUT_S = "UPSTREAM_CONNECT_TIMEOUT_S"

DEFAULT_GEMINI_LIVE_MODEL = "gemini-live-2.5-flash-preview"
DEFAULT_GEMINI_LIVE_URL = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)
DEFAULT_SYSTEM_INSTRUCTION = (
    "You are a helpful AI financial advisor. Respond naturally in a conversational tone as if speaking to a "
    "friend. Keep responses concise but informative. Focus on practical financial advice, budgeting tips, "
    "investment guidance, and money management strategies."
)
DEFAULT_UPSTREAM_CONNECT_TIMEOUT_S = 15.0

# "signal": end_turn sends an explicit end-of-audio-stream upstream.
# "vad": end_turn is a no-op and the model's own voice activity detection ends the turn.
END_TURN_POLICY_SIGNAL = "signal"
END_TURN_POLICY_VAD = "vad"
END_TURN_POLICIES = frozenset({END_TURN_POLICY_SIGNAL, END_TURN_POLICY_VAD})
DEFAULT_END_TURN_POLICY = END_TURN_POLICY_SIGNAL

UPSTREAM_RESPONSE_MODALITY = "AUDIO"

__all__ = [
    "ENV_GEMINI_LIVE_MODEL",
    "ENV_GEMINI_LIVE_URL",
    "ENV_SYSTEM_INSTRUCTION",
    "ENV_END_TURN_POLICY",
    "ENV_UPSTREAM_CONNECT_TIMEOUT_S",
    "DEFAULT_GEMINI_LIVE_MODEL",
    "DEFAULT_GEMINI_LIVE_URL",
    "DEFAULT_SYSTEM_INSTRUCTION",
    "DEFAULT_UPSTREAM_CONNECT_TIMEOUT_S",
    "END_TURN_POLICY_SIGNAL",
    "END_TURN_POLICY_VAD",
    "END_TURN_POLICIES",
    "DEFAULT_END_TURN_POLICY",
    "UPSTREAM_RESPONSE_MODALITY",
]
