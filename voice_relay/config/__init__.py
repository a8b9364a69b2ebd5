"""Configuration module exports (env names, defaults and protocol constants)."""

from .websocket import WS_ENDPOINT_PATH
from .audio import INPUT_MIME_TYPE, INPUT_SAMPLE_RATE_HZ, OUTPUT_SAMPLE_RATE_HZ

__all__ = [
    "INPUT_MIME_TYPE",
    "INPUT_SAMPLE_RATE_HZ",
    "OUTPUT_SAMPLE_RATE_HZ",
    "WS_ENDPOINT_PATH",
]
