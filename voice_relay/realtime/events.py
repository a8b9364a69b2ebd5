"""Decoding of upstream live-model server frames."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any
from dataclasses import field, dataclass

import orjson

from voice_relay.errors import ProtocolError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UpstreamMessage:
    """Content of one upstream server frame, already split by kind."""

    model_texts: list[str] = field(default_factory=list)
    user_texts: list[str] = field(default_factory=list)
    audio_chunks: list[bytes] = field(default_factory=list)
    turn_complete: bool = False
    interrupted: bool = False
    setup_complete: bool = False
    go_away: bool = False

    @property
    def has_content(self) -> bool:
        return bool(self.model_texts or self.user_texts or self.audio_chunks or self.turn_complete or self.interrupted)


def _transcription_text(content: dict[str, Any], key: str) -> str | None:
    block = content.get(key)
    if not isinstance(block, dict):
        return None
    text = block.get("text")
    return text if isinstance(text, str) and text else None


def _collect_model_turn(content: dict[str, Any], message: UpstreamMessage) -> None:
    turn = content.get("modelTurn")
    if not isinstance(turn, dict):
        return
    parts = turn.get("parts")
    if not isinstance(parts, list):
        return
    for part in parts:
        if not isinstance(part, dict) or part.get("thought"):
            continue
        text = part.get("text")
        if isinstance(text, str) and text:
            message.model_texts.append(text)
        inline = part.get("inlineData")
        if not isinstance(inline, dict):
            continue
        mime_type = inline.get("mimeType")
        data = inline.get("data")
        if not isinstance(data, str) or not data:
            continue
        if isinstance(mime_type, str) and not mime_type.startswith("audio/"):
            logger.debug("skipping non-audio inline part mime=%s", mime_type)
            continue
        try:
            message.audio_chunks.append(base64.b64decode(data))
        except (binascii.Error, ValueError) as exc:
            raise ProtocolError(f"upstream audio part is not valid base64: {exc}") from exc


def parse_upstream_message(raw: str | bytes) -> UpstreamMessage:
    try:
        frame = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise ProtocolError(f"invalid upstream JSON: {exc}") from exc
    if not isinstance(frame, dict):
        raise ProtocolError("upstream frame must be a JSON object")

    message = UpstreamMessage(
        setup_complete="setupComplete" in frame,
        go_away="goAway" in frame,
    )

    content = frame.get("serverContent")
    if isinstance(content, dict):
        # Input transcription belongs to the user's utterance, so it is emitted first.
        user_text = _transcription_text(content, "inputTranscription")
        if user_text:
            message.user_texts.append(user_text)
        _collect_model_turn(content, message)
        model_text = _transcription_text(content, "outputTranscription")
        if model_text:
            message.model_texts.append(model_text)
        message.interrupted = bool(content.get("interrupted"))
        message.turn_complete = bool(content.get("turnComplete"))

    return message


__all__ = ["UpstreamMessage", "parse_upstream_message"]
