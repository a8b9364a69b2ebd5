"""External transcoding backend (ffmpeg) for compressed container audio."""

from __future__ import annotations

import os
import asyncio
import logging
import tempfile
import contextlib
from typing import Protocol

from voice_relay.errors import AudioProcessingError
from voice_relay.config.audio import INPUT_CHANNELS, DEFAULT_FFMPEG_PATH, INPUT_SAMPLE_RATE_HZ

logger = logging.getLogger(__name__)

_STDERR_TAIL_CHARS = 500


class Transcoder(Protocol):
    async def transcode(self, data: bytes, *, input_suffix: str = ".bin") -> bytes: ...


class FfmpegTranscoder:
    """Decode arbitrary audio to raw PCM16 LE via an ffmpeg subprocess.

    Input and output go through temporary files, both removed whether the
    subprocess succeeds, fails, times out or the calling task is cancelled.
    A cancelled or timed-out ffmpeg is killed.
    """

    def __init__(
        self,
        *,
        ffmpeg_path: str = DEFAULT_FFMPEG_PATH,
        sample_rate: int = INPUT_SAMPLE_RATE_HZ,
        channels: int = INPUT_CHANNELS,
        timeout_s: float = 30.0,
        temp_dir: str | None = None,
    ) -> None:
        self._ffmpeg_path = ffmpeg_path
        self._sample_rate = int(sample_rate)
        self._channels = int(channels)
        self._timeout_s = float(timeout_s)
        self._temp_dir = temp_dir

    def build_command(self, input_path: str, output_path: str) -> list[str]:
        return [
            self._ffmpeg_path,
            "-nostdin",
            "-hide_banner",
            "-loglevel",
            "error",
            "-y",
            "-i",
            input_path,
            "-ac",
            str(self._channels),
            "-ar",
            str(self._sample_rate),
            "-acodec",
            "pcm_s16le",
            "-f",
            "s16le",
            output_path,
        ]

    async def _run(self, cmd: list[str]) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise AudioProcessingError(f"transcoder not found: {self._ffmpeg_path}") from exc
        except OSError as exc:
            raise AudioProcessingError(f"failed to start transcoder: {exc}") from exc

        try:
            _stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout_s)
        except TimeoutError as exc:
            raise AudioProcessingError(f"transcoder timed out after {self._timeout_s:.1f}s") from exc
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                with contextlib.suppress(Exception):
                    await proc.wait()

        if proc.returncode != 0:
            tail = (stderr or b"").decode("utf-8", errors="replace").strip()[-_STDERR_TAIL_CHARS:]
            logger.warning("ffmpeg exited with code %s: %s", proc.returncode, tail)
            raise AudioProcessingError(f"ffmpeg exited with code {proc.returncode}")

    async def transcode(self, data: bytes, *, input_suffix: str = ".bin") -> bytes:
        if not data:
            raise AudioProcessingError("empty audio chunk")

        in_fd, in_path = tempfile.mkstemp(prefix="relay_in_", suffix=input_suffix, dir=self._temp_dir)
        out_fd, out_path = tempfile.mkstemp(prefix="relay_out_", suffix=".pcm", dir=self._temp_dir)
        os.close(out_fd)
        try:
            with os.fdopen(in_fd, "wb") as fh:
                fh.write(data)

            await self._run(self.build_command(in_path, out_path))

            with open(out_path, "rb") as fh:
                pcm = fh.read()
            if not pcm:
                raise AudioProcessingError("transcoder produced no audio")
            return pcm
        finally:
            for path in (in_path, out_path):
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(path)


__all__ = ["FfmpegTranscoder", "Transcoder"]
