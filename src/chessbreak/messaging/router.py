from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from chessbreak.logic.exceptions import IdentityNotFoundError
from chessbreak.messaging.types import (
    BridgeReadyMessage,
    ClearStatsMessage,
    ErrorMessage,
    MutationsMessage,
    OptionsUpdatedMessage,
    PageLoadedMessage,
    PingMessage,
    PongMessage,
    SessionErrorCode,
    SetMarkerMessage,
    parse_page_message,
)
from chessbreak.page.dom import MutationBatch, PageTree
from chessbreak.page.markers import DISABLED_MARKER, DISABLED_MARKER_CSS
from chessbreak.session.manager import TiltSessionManager

if TYPE_CHECKING:
    from pydantic import BaseModel

    from chessbreak.messaging.protocol import ConnectionProtocol
    from chessbreak.messaging.types import LockoutSignal
    from chessbreak.page.dom import MarkerListener
    from chessbreak.session.options_store import OptionsStore
    from chessbreak.session.session_store import SessionStore

logger = structlog.get_logger()

IDENTITY_CLOSE_CODE = 4001


async def _send(connection: ConnectionProtocol, message: BaseModel) -> None:
    """Send a message; a page that has already gone away is logged, not raised."""
    try:
        await connection.send_model(message)
    except ConnectionError:
        logger.warning("page disconnected, message dropped", type=getattr(message, "type", None))


class ConnectionNotifier:
    """Delivers lockout signals to the page's notification dispatcher."""

    def __init__(self, connection: ConnectionProtocol) -> None:
        self._connection = connection

    async def notify(self, signal: LockoutSignal) -> None:
        await _send(self._connection, signal)


def _marker_forwarder(connection: ConnectionProtocol) -> MarkerListener:
    async def forward(node_ids: list[str], marker: str, enabled: bool) -> None:  # noqa: FBT001
        await _send(connection, SetMarkerMessage(node_ids=node_ids, marker=marker, enabled=enabled))

    return forward


@dataclass
class PageSession:
    connection: ConnectionProtocol
    tree: PageTree
    manager: TiltSessionManager


class MessageRouter:
    """
    Routes incoming page messages to the page's state machine.

    Each connection hosts at most one page and one TiltSessionManager; all
    of them share the options and session stores.
    """

    def __init__(
        self,
        options_store: OptionsStore,
        session_store: SessionStore,
        *,
        max_pages: int = 16,
    ) -> None:
        self._options_store = options_store
        self._session_store = session_store
        self._max_pages = max_pages
        self._pages: dict[str, PageSession] = {}

    @property
    def session_store(self) -> SessionStore:
        return self._session_store

    @property
    def page_count(self) -> int:
        return len(self._pages)

    @property
    def active_lockouts(self) -> int:
        return sum(1 for page in self._pages.values() if page.manager.lockout_active)

    def get_page(self, connection_id: str) -> PageSession | None:
        return self._pages.get(connection_id)

    def shutdown(self) -> None:
        """Stop every page's lockout timer; persisted windows are resumed by the next page instance."""
        for page in self._pages.values():
            page.manager.shutdown()

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        await _send(connection, BridgeReadyMessage(marker=DISABLED_MARKER, marker_css=DISABLED_MARKER_CSS))

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        page = self._pages.pop(connection.connection_id, None)
        if page is not None:
            page.manager.shutdown()

    async def handle_message(self, connection: ConnectionProtocol, raw_message: dict[str, Any]) -> None:
        try:
            message = parse_page_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message", connection_id=connection.connection_id, error=str(e))
            await self._send_error(connection, SessionErrorCode.INVALID_MESSAGE, str(e))
            return

        if isinstance(message, PingMessage):
            await _send(connection, PongMessage())
        elif isinstance(message, PageLoadedMessage):
            await self._handle_page_loaded(connection, message)
        else:
            page = self._pages.get(connection.connection_id)
            if page is None:
                await self._send_error(connection, SessionErrorCode.PAGE_NOT_LOADED, "page_loaded must come first")
            elif isinstance(message, MutationsMessage):
                await self._handle_mutations(page, message)
            elif isinstance(message, OptionsUpdatedMessage):
                await page.manager.options_updated()
            elif isinstance(message, ClearStatsMessage):
                await page.manager.clear_stats()

    async def _handle_page_loaded(self, connection: ConnectionProtocol, message: PageLoadedMessage) -> None:
        """Mirror the page, start its state machine and evaluate the initial document."""
        if connection.connection_id in self._pages:
            await self._send_error(connection, SessionErrorCode.ALREADY_LOADED, "page already loaded")
            return
        if len(self._pages) >= self._max_pages:
            await self._send_error(connection, SessionErrorCode.TOO_MANY_PAGES, "too many pages connected")
            return

        tree = PageTree(message.document, url=message.url, marker_listener=_marker_forwarder(connection))
        try:
            manager = TiltSessionManager(
                tree,
                options_store=self._options_store,
                session_store=self._session_store,
                sink=ConnectionNotifier(connection),
            )
        except IdentityNotFoundError as e:
            logger.warning("page has no viewer identity", connection_id=connection.connection_id, error=str(e))
            await self._send_error(connection, SessionErrorCode.IDENTITY_NOT_FOUND, str(e))
            await connection.close(code=IDENTITY_CLOSE_CODE, reason="identity_not_found")
            return

        structlog.contextvars.bind_contextvars(username=manager.identity)
        await manager.start()
        self._pages[connection.connection_id] = PageSession(connection=connection, tree=tree, manager=manager)
        # everything already on the page is treated as freshly inserted
        await manager.handle_batch(MutationBatch(added=(tree.root,)), url=message.url)

    async def _handle_mutations(self, page: PageSession, message: MutationsMessage) -> None:
        if message.url:
            page.tree.url = message.url
        batch = page.tree.apply(message.records)
        await page.manager.handle_batch(batch, url=message.url)

    async def _send_error(self, connection: ConnectionProtocol, code: SessionErrorCode, message: str) -> None:
        await _send(connection, ErrorMessage(code=code, message=message))
