from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from chessbreak.logic.statistics import dashboard_for_state
from chessbreak.messaging.router import MessageRouter
from chessbreak.server.settings import BridgeSettings
from chessbreak.server.websocket import websocket_endpoint
from chessbreak.session.options_store import OptionsStore
from chessbreak.session.session_store import SessionStore
from shared.build_info import APP_VERSION
from shared.logging import setup_logging
from shared.storage import FileKeyValueStorage

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION})


async def status(request: Request) -> JSONResponse:
    router: MessageRouter = request.app.state.message_router
    settings: BridgeSettings = request.app.state.settings
    return JSONResponse(
        {
            "status": "ok",
            "version": APP_VERSION,
            "connected_pages": router.page_count,
            "active_lockouts": router.active_lockouts,
            "max_pages": settings.max_pages,
        },
    )


async def stats(request: Request) -> JSONResponse:
    router: MessageRouter = request.app.state.message_router
    try:
        state = await router.session_store.load()
    except OSError:
        logger.exception("failed to load session state for stats")
        return JSONResponse({"error": "Session storage unavailable"}, status_code=503)
    return JSONResponse(dashboard_for_state(state).model_dump(mode="json"))


def create_app(
    settings: BridgeSettings | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = BridgeSettings()

    if message_router is None:
        message_router = MessageRouter(
            OptionsStore(FileKeyValueStorage(settings.options_path)),
            SessionStore(FileKeyValueStorage(settings.session_path)),
            max_pages=settings.max_pages,
        )

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router, allowed_origins=settings.cors_origins)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/stats", stats, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        yield
        message_router.shutdown()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.message_router = message_router

    logger.info("page bridge ready")
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = BridgeSettings()
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
