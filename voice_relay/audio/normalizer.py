"""Normalize client audio chunks to base64 PCM16 mono at the upstream input rate."""

from __future__ import annotations

import base64
import logging
import binascii

from voice_relay.errors import AudioProcessingError
from voice_relay.config.audio import (
    PCM_MIME_SUBTYPES,
    WAV_MIME_SUBTYPES,
    INPUT_SAMPLE_RATE_HZ,
    CONTAINER_MIME_MARKERS,
)

from .transcoder import Transcoder
from .resample import wav_to_pcm16_mono, resample_pcm16_mono

logger = logging.getLogger(__name__)

_SUFFIX_BY_MARKER = {
    "webm": ".webm",
    "ogg": ".ogg",
    "opus": ".ogg",
    "mp4": ".mp4",
    "m4a": ".m4a",
    "aac": ".aac",
    "mpeg": ".mp3",
    "mp3": ".mp3",
    "3gpp": ".3gp",
    "amr": ".amr",
    "caf": ".caf",
    "flac": ".flac",
}


def parse_mime_type(mime_type: str | None) -> tuple[str, dict[str, str]]:
    """Split ``audio/pcm;rate=16000`` into (``pcm``, ``{"rate": "16000"}``)."""
    raw = (mime_type or "").strip().lower()
    if not raw:
        return "", {}
    head, *params = raw.split(";")
    subtype = head.split("/", 1)[1] if "/" in head else head
    parsed: dict[str, str] = {}
    for param in params:
        key, sep, value = param.partition("=")
        if sep:
            parsed[key.strip()] = value.strip().strip('"')
    return subtype.strip(), parsed


def suffix_for_mime(mime_type: str | None) -> str:
    lowered = (mime_type or "").lower()
    for marker, suffix in _SUFFIX_BY_MARKER.items():
        if marker in lowered:
            return suffix
    return ".bin"


def decode_base64_audio(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AudioProcessingError(f"audio data is not valid base64: {exc}") from exc


class AudioNormalizer:
    """Stateless converter from client audio to the upstream's PCM format.

    - raw PCM already at the target rate passes through (base64 only)
    - raw PCM at another rate and RIFF/WAVE input are converted in-process
    - compressed containers and unrecognised input go to the transcoder
    """

    def __init__(self, transcoder: Transcoder, *, target_rate: int = INPUT_SAMPLE_RATE_HZ) -> None:
        self._transcoder = transcoder
        self._target_rate = int(target_rate)

    @property
    def target_rate(self) -> int:
        return self._target_rate

    def _pcm_rate(self, params: dict[str, str]) -> int:
        rate_raw = params.get("rate") or params.get("samplerate")
        if not rate_raw:
            # Untagged PCM is assumed to already be at the upstream rate.
            return self._target_rate
        try:
            return int(rate_raw)
        except ValueError as exc:
            raise AudioProcessingError(f"invalid PCM rate: {rate_raw!r}") from exc

    async def to_pcm(self, data: bytes, mime_type: str | None) -> bytes:
        if not data:
            raise AudioProcessingError("empty audio chunk")

        subtype, params = parse_mime_type(mime_type)

        if subtype in PCM_MIME_SUBTYPES:
            rate = self._pcm_rate(params)
            if rate == self._target_rate:
                if len(data) % 2:
                    raise AudioProcessingError("PCM16 payload has an odd number of bytes")
                return data
            return resample_pcm16_mono(data, rate, self._target_rate)

        if subtype in WAV_MIME_SUBTYPES or (data[:4] == b"RIFF" and data[8:12] == b"WAVE"):
            return wav_to_pcm16_mono(data, self._target_rate)

        if subtype and not any(marker in subtype for marker in CONTAINER_MIME_MARKERS):
            logger.debug("unrecognised audio mime type %r; handing to transcoder", mime_type)
        return await self._transcoder.transcode(data, input_suffix=suffix_for_mime(mime_type))

    async def normalize(self, data: bytes, mime_type: str | None) -> str:
        pcm = await self.to_pcm(data, mime_type)
        return base64.b64encode(pcm).decode("ascii")


__all__ = [
    "AudioNormalizer",
    "decode_base64_audio",
    "parse_mime_type",
    "suffix_for_mime",
]
