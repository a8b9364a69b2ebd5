"""RIFF/WAVE framing for raw PCM payloads."""

from __future__ import annotations

import struct

from voice_relay.config.audio import WAV_HEADER_BYTES

_WAV_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")
_FMT_CHUNK_SIZE = 16
_FORMAT_PCM = 1


def wav_header(
    data_length: int,
    sample_rate: int,
    *,
    channels: int = 1,
    bits_per_sample: int = 16,
) -> bytes:
    """Build the canonical 44-byte header for a PCM payload of ``data_length`` bytes."""
    if data_length < 0:
        raise ValueError("data_length must be >= 0")
    if sample_rate <= 0 or channels <= 0 or bits_per_sample <= 0 or bits_per_sample % 8:
        raise ValueError("invalid PCM format")

    block_align = channels * (bits_per_sample // 8)
    return _WAV_HEADER.pack(
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        _FMT_CHUNK_SIZE,
        _FORMAT_PCM,
        channels,
        sample_rate,
        sample_rate * block_align,
        block_align,
        bits_per_sample,
        b"data",
        data_length,
    )


def frame_wav(
    pcm: bytes,
    sample_rate: int,
    *,
    channels: int = 1,
    bits_per_sample: int = 16,
) -> bytes:
    """Prefix little-endian PCM with a standard WAV header."""
    return wav_header(len(pcm), sample_rate, channels=channels, bits_per_sample=bits_per_sample) + bytes(pcm)


def strip_wav_header(wav: bytes) -> bytes:
    """Return the PCM payload of a canonical 44-byte-header WAV."""
    if len(wav) < WAV_HEADER_BYTES or wav[0:4] != b"RIFF" or wav[8:12] != b"WAVE":
        raise ValueError("not a canonical WAV buffer")
    (data_length,) = struct.unpack_from("<I", wav, 40)
    return wav[WAV_HEADER_BYTES : WAV_HEADER_BYTES + data_length]


__all__ = ["frame_wav", "strip_wav_header", "wav_header"]
