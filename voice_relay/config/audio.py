"""Audio format configuration."""

from __future__ import annotations

# Upstream expects PCM16 mono at 16kHz.
INPUT_SAMPLE_RATE_HZ: int = 16000
INPUT_CHANNELS: int = 1
PCM_SAMPLE_WIDTH_BYTES: int = 2
INPUT_MIME_TYPE: str = f"audio/pcm;rate={INPUT_SAMPLE_RATE_HZ}"

# The model answers with PCM16 mono at 24kHz.
OUTPUT_SAMPLE_RATE_HZ: int = 24000

WAV_HEADER_BYTES: int = 44

PCM_MIME_SUBTYPES = frozenset({"pcm", "l16", "x-pcm", "raw"})
WAV_MIME_SUBTYPES = frozenset({"wav", "x-wav", "wave", "vnd.wave"})
CONTAINER_MIME_MARKERS = (
    "webm",
    "ogg",
    "opus",
    "mp4",
    "m4a",
    "aac",
    "mpeg",
    "mp3",
    "3gpp",
    "amr",
    "caf",
    "flac",
)

ENV_FFMPEG_PATH = "FFMPEG_PATH"
ENV_TRANSCODER_TIMEOUT_S = "TRANSCODER_TIMEOUT_S"

DEFAULT_FFMPEG_PATH = "ffmpeg"
DEFAULT_TRANSCODER_TIMEOUT_S = 30.0

__all__ = [
    "INPUT_SAMPLE_RATE_HZ",
    "INPUT_CHANNELS",
    "PCM_SAMPLE_WIDTH_BYTES",
    "INPUT_MIME_TYPE",
    "OUTPUT_SAMPLE_RATE_HZ",
    "WAV_HEADER_BYTES",
    "PCM_MIME_SUBTYPES",
    "WAV_MIME_SUBTYPES",
    "CONTAINER_MIME_MARKERS",
    "ENV_FFMPEG_PATH",
    "ENV_TRANSCODER_TIMEOUT_S",
    "DEFAULT_FFMPEG_PATH",
    "DEFAULT_TRANSCODER_TIMEOUT_S",
]
