"""WebSocket transport between a page relay and the message router.

Each socket carries one page instance. Frames are decoded here; repeated
garbage closes the socket, anything decodable goes to the router.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from chessbreak.messaging.encoder import DecodeError, decode
from chessbreak.messaging.protocol import ConnectionProtocol
from chessbreak.messaging.types import ErrorMessage, SessionErrorCode

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import Sequence

    from chessbreak.messaging.router import MessageRouter

# Disconnect after this many consecutive undecodable frames
_MAX_DECODE_ERRORS = 5

DECODE_ERRORS_CLOSE_CODE = 4004
ORIGIN_REJECTED_CLOSE_CODE = 4003


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            raise ConnectionError("page relay already disconnected") from None

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            raise ConnectionError("page relay already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


def origin_allowed(origin: str | None, allowed_origins: Sequence[str]) -> bool:
    """A relay without an Origin header is not a browser page and is let through."""
    if origin is None or "*" in allowed_origins:
        return True
    return origin in allowed_origins


async def websocket_endpoint(
    websocket: WebSocket,
    router: MessageRouter,
    allowed_origins: Sequence[str] = ("*",),
) -> None:
    origin = websocket.headers.get("origin")
    if not origin_allowed(origin, allowed_origins):
        logger.warning("page relay rejected", origin=origin)
        await websocket.close(code=ORIGIN_REJECTED_CLOSE_CODE)
        return

    await websocket.accept()
    connection = WebSocketConnection(websocket)
    structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)
    logger.info("page relay connected", origin=origin)
    await router.handle_connect(connection)

    decode_errors = 0
    try:
        while True:
            raw = await connection.receive_bytes()
            try:
                data = decode(raw)
            except DecodeError as e:
                decode_errors += 1
                logger.warning("undecodable frame", error=str(e), strikes=decode_errors)
                await connection.send_model(ErrorMessage(code=SessionErrorCode.INVALID_MESSAGE, message=str(e)))
                if decode_errors >= _MAX_DECODE_ERRORS:
                    logger.info("too many undecodable frames, disconnecting")
                    await connection.close(code=DECODE_ERRORS_CLOSE_CODE, reason="too_many_decode_errors")
                    return
                continue

            decode_errors = 0
            await router.handle_message(connection, data)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        logger.info("page relay disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
