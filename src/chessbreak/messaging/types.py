from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from chessbreak.logic.enums import LockoutSignalType
from chessbreak.page.dom import MutationRecord, NodeSnapshot

_MAX_URL_LENGTH = 2048


class PageMessageType(StrEnum):
    PAGE_LOADED = "page_loaded"
    MUTATIONS = "mutations"
    OPTIONS_UPDATED = "OPTIONS_UPDATED"
    CLEAR_STATS = "CLEAR_STATS"
    PING = "ping"


class BridgeMessageType(StrEnum):
    BRIDGE_READY = "bridge_ready"
    SET_MARKER = "set_marker"
    ERROR = "session_error"
    PONG = "pong"


class SessionErrorCode(StrEnum):
    INVALID_MESSAGE = "invalid_message"
    IDENTITY_NOT_FOUND = "identity_not_found"
    PAGE_NOT_LOADED = "page_not_loaded"
    ALREADY_LOADED = "already_loaded"
    TOO_MANY_PAGES = "too_many_pages"


class PageLoadedMessage(BaseModel):
    type: Literal[PageMessageType.PAGE_LOADED] = PageMessageType.PAGE_LOADED
    url: str | None = Field(default=None, max_length=_MAX_URL_LENGTH)
    document: NodeSnapshot


class MutationsMessage(BaseModel):
    type: Literal[PageMessageType.MUTATIONS] = PageMessageType.MUTATIONS
    url: str | None = Field(default=None, max_length=_MAX_URL_LENGTH)
    records: list[MutationRecord] = Field(default_factory=list, max_length=512)


class OptionsUpdatedMessage(BaseModel):
    type: Literal[PageMessageType.OPTIONS_UPDATED] = PageMessageType.OPTIONS_UPDATED


class ClearStatsMessage(BaseModel):
    type: Literal[PageMessageType.CLEAR_STATS] = PageMessageType.CLEAR_STATS


class PingMessage(BaseModel):
    type: Literal[PageMessageType.PING] = PageMessageType.PING


PageMessage = Annotated[
    PageLoadedMessage | MutationsMessage | OptionsUpdatedMessage | ClearStatsMessage | PingMessage,
    Field(discriminator="type"),
]


class BridgeReadyMessage(BaseModel):
    """Sent on connect: the class used to disable controls and its style rule."""

    type: Literal[BridgeMessageType.BRIDGE_READY] = BridgeMessageType.BRIDGE_READY
    marker: str
    marker_css: str


class SetMarkerMessage(BaseModel):
    type: Literal[BridgeMessageType.SET_MARKER] = BridgeMessageType.SET_MARKER
    node_ids: list[str]
    marker: str
    enabled: bool


class ErrorMessage(BaseModel):
    type: Literal[BridgeMessageType.ERROR] = BridgeMessageType.ERROR
    code: SessionErrorCode
    message: str


class PongMessage(BaseModel):
    type: Literal[BridgeMessageType.PONG] = BridgeMessageType.PONG


class LockoutSignalData(BaseModel):
    timeout: int  # ms


class LockoutSignal(BaseModel):
    """Lockout start/end signal delivered to the notification dispatcher."""

    type: LockoutSignalType
    data: LockoutSignalData

    @classmethod
    def create(cls, signal_type: LockoutSignalType, duration_ms: int) -> "LockoutSignal":
        return cls(type=signal_type, data=LockoutSignalData(timeout=duration_ms))


_page_message_adapter = TypeAdapter(PageMessage)


def parse_page_message(data: dict[str, Any]) -> PageMessage:
    """Parse a raw dict into a typed page message."""
    return _page_message_adapter.validate_python(data)
