"""Runtime dependency construction (upstream bridge, audio pipeline, admission control)."""

from __future__ import annotations

import logging

from voice_relay.state import RuntimeDeps
from voice_relay.state.settings import AppSettings
from voice_relay.realtime.bridge import UpstreamBridge
from voice_relay.handlers.registry import SessionRegistry
from voice_relay.handlers.connections import ConnectionManager
from voice_relay.audio import AudioNormalizer, FfmpegTranscoder

from .settings import load_settings

logger = logging.getLogger(__name__)


async def build_runtime_deps(settings: AppSettings | None = None) -> RuntimeDeps:
    settings = settings or load_settings()

    if not settings.upstream.api_key:
        logger.warning("upstream API key is not set; every session will fail to connect")
    if not settings.auth.api_key:
        logger.warning("relay API key is not set; the live voice endpoint is unauthenticated")

    transcoder = FfmpegTranscoder(
        ffmpeg_path=settings.audio.ffmpeg_path,
        sample_rate=settings.audio.input_sample_rate_hz,
        timeout_s=settings.audio.transcoder_timeout_s,
    )
    normalizer = AudioNormalizer(transcoder, target_rate=settings.audio.input_sample_rate_hz)

    registry = SessionRegistry(
        timeout_s=settings.session.timeout_s,
        sweep_interval_s=settings.session.sweep_interval_s,
    )
    registry.start()

    logger.info(
        "runtime: model=%s end_turn_policy=%s session_timeout=%.0fs",
        settings.upstream.model,
        settings.upstream.end_turn_policy,
        settings.session.timeout_s,
    )

    return RuntimeDeps(
        connections=ConnectionManager(max_connections=settings.limits.max_concurrent_connections),
        registry=registry,
        upstream_bridge=UpstreamBridge(settings=settings.upstream),
        normalizer=normalizer,
        settings=settings,
    )


__all__ = ["RuntimeDeps", "build_runtime_deps"]
