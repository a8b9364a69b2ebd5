from __future__ import annotations

import json
import base64
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from voice_relay.state import RuntimeDeps
from voice_relay.server import create_app
from voice_relay.audio.wav import strip_wav_header
from voice_relay.state.settings import AppSettings
from voice_relay.audio.normalizer import AudioNormalizer
from voice_relay.realtime.events import UpstreamMessage
from voice_relay.handlers.registry import SessionRegistry
from voice_relay.handlers.connections import ConnectionManager

from tests.fakes import FakeBridge, FakeTranscoder, make_settings


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _app(bridge: FakeBridge, settings: AppSettings | None = None) -> tuple[FastAPI, dict[str, Any]]:
    settings = settings or make_settings()
    holder: dict[str, Any] = {}

    async def factory() -> RuntimeDeps:
        deps = RuntimeDeps(
            connections=ConnectionManager(max_connections=settings.limits.max_concurrent_connections),
            registry=SessionRegistry(
                timeout_s=settings.session.timeout_s,
                sweep_interval_s=settings.session.sweep_interval_s,
            ),
            upstream_bridge=bridge,
            normalizer=AudioNormalizer(FakeTranscoder()),
            settings=settings,
        )
        holder["deps"] = deps
        return deps

    return create_app(factory), holder


def test_health_endpoints() -> None:
    app, _holder = _app(FakeBridge())
    with TestClient(app) as client:
        assert client.get("/").json() == {"status": "ok"}
        assert client.get("/healthz").json() == {"status": "ok"}
        assert client.get("/health").json()["status"] == "ok"
        assert client.get("/sessions").json() == {"count": 0, "sessions": []}


def test_full_turn_round_trip() -> None:
    bridge = FakeBridge()
    app, _holder = _app(bridge)

    with TestClient(app) as client:
        with client.websocket_connect("/live-voice") as ws:
            started = ws.receive_json()
            assert started["type"] == "session_started"
            session_id = started["sessionId"]

            chunks = [b"\x01\x00\x02\x00", b"\x03\x00\x04\x00", b"\x05\x00\x06\x00"]
            frames = [
                json.dumps({"type": "audio_chunk", "data": _b64(chunk), "mimeType": "audio/pcm;rate=16000"})
                for chunk in chunks
            ]
            ws.send_text(frames[0])
            # Two messages coalesced into one transport frame.
            ws.send_text(frames[1] + frames[2])
            ws.send_json({"type": "end_turn"})
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

            assert bridge.upstream.events == [
                ("audio", _b64(chunks[0])),
                ("audio", _b64(chunks[1])),
                ("audio", _b64(chunks[2])),
                ("turn_complete", None),
            ]
            assert bridge.upstream.close_calls == 0

            for message in (
                UpstreamMessage(user_texts=["how should I budget"]),
                UpstreamMessage(audio_chunks=[b"AA", b"BB"]),
                UpstreamMessage(audio_chunks=[b"CC"], model_texts=["Start with a plan."], turn_complete=True),
            ):
                client.portal.call(bridge.callbacks.on_message, message)

            assert ws.receive_json() == {"type": "transcript", "text": "how should I budget", "isUser": True}
            assert ws.receive_json() == {"type": "transcript", "text": "Start with a plan.", "isUser": False}
            audio = ws.receive_json()
            assert audio["type"] == "audio"
            assert strip_wav_header(base64.b64decode(audio["audio"])) == b"AABBCC"

            sessions = client.get("/sessions").json()
            assert sessions["count"] == 1
            assert sessions["sessions"][0]["id"] == session_id
            assert sessions["sessions"][0]["state"] == "connected"

            ws.send_json({"type": "stop"})
            assert ws.receive_json() == {"type": "session_stopped"}
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
            assert exc.value.code == 1000

        assert bridge.upstream.close_calls == 1
        assert client.get("/sessions").json()["count"] == 0


def test_malformed_fragment_does_not_stop_the_session() -> None:
    app, _holder = _app(FakeBridge())

    with TestClient(app) as client:
        with client.websocket_connect("/live-voice") as ws:
            assert ws.receive_json()["type"] == "session_started"

            ws.send_text('{"type":"ping"}{oops}{"type":"ping"}')
            assert ws.receive_json() == {"type": "pong"}
            assert ws.receive_json() == {"type": "pong"}

            ws.send_text('{"type":"ping}{"type":"ping"}')
            assert ws.receive_json() == {"type": "pong"}

            ws.send_json({"type": "audio_chunk", "data": "@@@", "mimeType": "audio/webm"})
            error = ws.receive_json()
            assert error["type"] == "error"
            assert error["code"] == "audio_processing_error"

            ws.send_json({"type": "session_info"})
            info = ws.receive_json()
            assert info["type"] == "session_info_response"
            assert info["sessionInfo"]["isActive"] is True


def test_client_disconnect_releases_upstream() -> None:
    bridge = FakeBridge()
    app, holder = _app(bridge)

    with TestClient(app) as client:
        with client.websocket_connect("/live-voice") as ws:
            assert ws.receive_json()["type"] == "session_started"
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

        client.get("/healthz")
        deps = holder["deps"]
        assert bridge.upstream.close_calls == 1
        assert deps.registry.count() == 0
        assert deps.connections.get_connection_count() == 0


def test_upstream_failure_is_reported_and_closes() -> None:
    app, _holder = _app(FakeBridge(fail=True))

    with TestClient(app) as client:
        with client.websocket_connect("/live-voice") as ws:
            error = ws.receive_json()
            assert error == {"type": "error", "message": "Failed to initialize voice session", "code": "upstream_error"}
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
            assert exc.value.code == 4003
        assert client.get("/sessions").json()["count"] == 0


def test_relay_api_key_is_enforced_when_configured() -> None:
    app, _holder = _app(FakeBridge(), make_settings(relay_api_key="secret"))

    with TestClient(app) as client:
        with client.websocket_connect("/live-voice") as ws:
            assert ws.receive_json()["code"] == "authentication_failed"
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
            assert exc.value.code == 4001

        with client.websocket_connect("/live-voice?api_key=secret") as ws:
            assert ws.receive_json()["type"] == "session_started"

        assert client.get("/sessions").status_code == 401
        assert client.get("/sessions", headers={"X-API-Key": "secret"}).status_code == 200


def test_connections_over_capacity_are_rejected() -> None:
    app, _holder = _app(FakeBridge(), make_settings(max_concurrent_connections=1))

    with TestClient(app) as client:
        with client.websocket_connect("/live-voice") as first:
            assert first.receive_json()["type"] == "session_started"
            with client.websocket_connect("/live-voice") as second:
                assert second.receive_json()["code"] == "server_at_capacity"
                with pytest.raises(WebSocketDisconnect) as exc:
                    second.receive_json()
                assert exc.value.code == 4002
