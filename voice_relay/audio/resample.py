"""In-process PCM conversion for uncontainerized WAV and raw PCM input."""

from __future__ import annotations

import io
import wave

import numpy as np

from voice_relay.errors import AudioProcessingError


def _pcm_to_float(frames: bytes, sample_width: int) -> np.ndarray:
    if sample_width == 1:
        # 8-bit WAV is unsigned.
        x = np.frombuffer(frames, dtype=np.uint8).astype(np.float32)
        return (x - 128.0) / 128.0
    if sample_width == 2:
        return np.frombuffer(frames, dtype="<i2").astype(np.float32) / 32768.0
    if sample_width == 3:
        raw = np.frombuffer(frames, dtype=np.uint8).reshape(-1, 3)
        x = raw[:, 0].astype(np.int32) | (raw[:, 1].astype(np.int32) << 8) | (raw[:, 2].astype(np.int32) << 16)
        x = np.where(x & 0x800000, x - 0x1000000, x)
        return x.astype(np.float32) / 8388608.0
    if sample_width == 4:
        return np.frombuffer(frames, dtype="<i4").astype(np.float32) / 2147483648.0
    raise AudioProcessingError(f"unsupported sample width: {sample_width} bytes")


def _float_to_pcm16(x: np.ndarray) -> bytes:
    y = np.clip(np.round(x * 32768.0), -32768, 32767).astype("<i2")
    return y.tobytes()


def resample_float(x: np.ndarray, sr_in: int, sr_out: int) -> np.ndarray:
    """Linear-interpolation resampling of mono float audio."""
    if sr_in == sr_out or x.size == 0:
        return x.astype(np.float32, copy=False)
    n_out = max(1, int(round(x.shape[0] * (sr_out / float(sr_in)))))
    src_idx = np.arange(x.shape[0], dtype=np.float64)
    dst_idx = np.linspace(0, x.shape[0] - 1, n_out, dtype=np.float64)
    return np.interp(dst_idx, src_idx, x.astype(np.float64)).astype(np.float32)


def resample_pcm16_mono(pcm: bytes, sr_in: int, sr_out: int) -> bytes:
    if sr_in <= 0 or sr_out <= 0:
        raise AudioProcessingError("sample rates must be positive")
    if len(pcm) % 2:
        raise AudioProcessingError("PCM16 payload has an odd number of bytes")
    if sr_in == sr_out or not pcm:
        return bytes(pcm)
    x = np.frombuffer(pcm, dtype="<i2").astype(np.float32) / 32768.0
    return _float_to_pcm16(resample_float(x, sr_in, sr_out))


def wav_to_pcm16_mono(data: bytes, target_rate: int) -> bytes:
    """Decode a RIFF/WAVE PCM buffer to PCM16 mono at ``target_rate``."""
    try:
        with wave.open(io.BytesIO(data), "rb") as wf:
            channels = wf.getnchannels()
            sample_width = wf.getsampwidth()
            sample_rate = wf.getframerate()
            frames = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as exc:
        raise AudioProcessingError(f"malformed WAV input: {exc}") from exc

    if not frames:
        raise AudioProcessingError("WAV input contains no audio frames")
    if sample_width == 2 and channels == 1 and sample_rate == target_rate:
        return frames

    x = _pcm_to_float(frames, sample_width)
    if channels > 1:
        usable = (x.shape[0] // channels) * channels
        x = x[:usable].reshape(-1, channels).mean(axis=1)

    return _float_to_pcm16(resample_float(x, sample_rate, target_rate))


__all__ = ["resample_float", "resample_pcm16_mono", "wav_to_pcm16_mono"]
