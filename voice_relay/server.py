"""Main FastAPI server for the live voice relay."""

from __future__ import annotations

import os
import logging
from typing import Any
from collections.abc import Callable, Awaitable
from contextlib import asynccontextmanager

import uvicorn
from fastapi.responses import ORJSONResponse
from fastapi import Header, FastAPI, Request, WebSocket, HTTPException

from voice_relay.state import RuntimeDeps
from voice_relay.config.websocket import WS_ENDPOINT_PATH
from voice_relay.runtime.logging import configure_logging
from voice_relay.handlers.websocket.auth import validate_api_key
from voice_relay.runtime.dependencies import build_runtime_deps
from voice_relay.handlers.websocket.manager import handle_websocket_connection

logger = logging.getLogger(__name__)

DepsFactory = Callable[[], Awaitable[RuntimeDeps]]


def _runtime_deps(app: FastAPI) -> RuntimeDeps:
    runtime_deps = getattr(app.state, "runtime_deps", None)
    if runtime_deps is None:
        raise RuntimeError("Runtime dependencies are not initialized")
    return runtime_deps


def create_app(deps_factory: DepsFactory = build_runtime_deps) -> FastAPI:
    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        app.state.runtime_deps = await deps_factory()
        logger.info("runtime: ready")
        try:
            yield
        finally:
            deps = getattr(app.state, "runtime_deps", None)
            if deps is not None:
                await deps.shutdown()

    app = FastAPI(default_response_class=ORJSONResponse, lifespan=_lifespan)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        deps = _runtime_deps(request.app)
        return {
            "status": "ok",
            "sessions": deps.registry.count(),
            "connections": deps.connections.get_connection_count(),
        }

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/sessions")
    async def sessions(request: Request, x_api_key: str | None = Header(default=None)) -> dict[str, Any]:
        deps = _runtime_deps(request.app)
        if not validate_api_key((x_api_key or "").strip(), deps.settings.auth.api_key):
            raise HTTPException(status_code=401, detail="invalid API key")
        return {"count": deps.registry.count(), "sessions": deps.registry.all_info()}

    @app.websocket(WS_ENDPOINT_PATH)
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await handle_websocket_connection(websocket, _runtime_deps(websocket.app))

    return app


configure_logging()

app = create_app()


def main() -> None:
    host = (os.getenv("HOST") or "0.0.0.0").strip()
    port = int(os.getenv("PORT") or "8000")
    uvicorn.run("voice_relay.server:app", host=host, port=port, log_level="info", ws="websockets")


__all__ = ["app", "create_app", "main"]


if __name__ == "__main__":
    main()
