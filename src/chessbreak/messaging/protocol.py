"""The page bridge's view of a connected page relay."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from chessbreak.messaging.encoder import encode_model

if TYPE_CHECKING:
    from pydantic import BaseModel


class ConnectionProtocol(ABC):
    """
    One page relay connection carrying MessagePack frames.

    The router only ever sends typed bridge messages; inbound frames are
    decoded by the transport loop before they reach the router.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str: ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None:
        """Send one frame. Raise ConnectionError once the page is gone."""

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_model(self, message: BaseModel) -> None:
        await self.send_bytes(encode_model(message))
