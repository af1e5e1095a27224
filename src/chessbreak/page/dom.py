"""In-memory mirror of the observed page.

The page relay serializes DOM nodes as NodeSnapshot trees and streams child
list mutations as MutationRecords. PageTree rebuilds them as BeautifulSoup
tags, applies the mutations, and hands each applied batch to the lifecycle
detector. Lookups go through bs4's CSS support (soupsieve), so the fixed
marker strings are plain CSS selectors.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import structlog
from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

logger = structlog.get_logger()

# (node_ids, marker, enabled) -> forwarded to the page
MarkerListener = Callable[[list[str], str, bool], Awaitable[None]]

# Mirrored elements are bs4 tags; the relay's handle is kept as an attribute.
PageElement = Tag
NODE_ID_ATTRIBUTE = "data-cb-node"


class NodeSnapshot(BaseModel):
    """Serialized element as sent by the page relay."""

    id: str = Field(min_length=1, max_length=64)
    tag: str = "div"
    classes: list[str] = Field(default_factory=list)
    attrs: dict[str, str] = Field(default_factory=dict)
    text: str = ""  # the element's own text nodes, concatenated
    children: list[NodeSnapshot] = Field(default_factory=list)


class MutationRecord(BaseModel):
    """One child-list mutation: nodes added under ``target`` and node ids removed."""

    target: str | None = None
    added: list[NodeSnapshot] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)


def node_id(element: PageElement) -> str:
    return element[NODE_ID_ATTRIBUTE]


def iter_text(element: PageElement) -> Iterator[str]:
    """Yield the non-empty text fragments of the subtree in document order."""
    for text in element.strings:
        if text:
            yield str(text)


def has_class(element: PageElement, name: str) -> bool:
    return name in element.get_attribute_list("class")


def _subtree(element: PageElement) -> Iterator[PageElement]:
    yield element
    yield from element.find_all(True)


@dataclass(frozen=True)
class MutationBatch:
    """Elements inserted and removed by one delivery of mutation records."""

    added: tuple[PageElement, ...] = ()
    removed: tuple[PageElement, ...] = ()


class PageDocument(Protocol):
    """What the state machine needs from the observed page."""

    url: str | None

    def select_one(self, selector: str) -> PageElement | None: ...

    def select(self, selector: str) -> list[PageElement]: ...

    async def set_marker(self, elements: Sequence[PageElement], marker: str, *, enabled: bool) -> None: ...


class PageTree:
    """Mirror of one page instance, kept current by applying mutation records.

    Marker changes are applied to the mirror and forwarded to the page
    through the optional marker listener.
    """

    def __init__(
        self,
        snapshot: NodeSnapshot,
        url: str | None = None,
        marker_listener: MarkerListener | None = None,
    ) -> None:
        self.url = url
        self._marker_listener = marker_listener
        self._soup = BeautifulSoup("", "html.parser")
        self._index: dict[str, PageElement] = {}
        self.root = self._build(snapshot)
        self._soup.append(self.root)

    def _build(self, snapshot: NodeSnapshot) -> PageElement:
        attrs = dict(snapshot.attrs)
        if snapshot.classes:
            attrs["class"] = " ".join(snapshot.classes)
        attrs[NODE_ID_ATTRIBUTE] = snapshot.id
        element = self._soup.new_tag(snapshot.tag, attrs=attrs)
        if snapshot.text:
            element.append(snapshot.text)
        for child in snapshot.children:
            element.append(self._build(child))
        self._index[snapshot.id] = element
        return element

    def get(self, node_id: str) -> PageElement | None:
        return self._index.get(node_id)

    def __len__(self) -> int:
        return len(self._index)

    def select_one(self, selector: str) -> PageElement | None:
        return self._soup.select_one(selector)

    def select(self, selector: str) -> list[PageElement]:
        return list(self._soup.select(selector))

    def _discard(self, element: PageElement) -> None:
        element.extract()
        for node in _subtree(element):
            key = node.get(NODE_ID_ATTRIBUTE)
            if self._index.get(key) is node:
                del self._index[key]

    def apply(self, records: Iterable[MutationRecord]) -> MutationBatch:
        """Apply mutation records in order and return what they inserted and removed."""
        added: list[PageElement] = []
        removed: list[PageElement] = []
        for record in records:
            for key in record.removed:
                element = self._index.get(key)
                if element is None or element is self.root:
                    continue
                self._discard(element)
                removed.append(element)

            parent = self._index.get(record.target) if record.target else None
            if record.target and parent is None:
                logger.debug("mutation target not mirrored, attaching to root", target=record.target)
            if parent is None:
                parent = self.root
            for snapshot in record.added:
                stale = self._index.get(snapshot.id)
                if stale is not None and stale is not self.root:
                    self._discard(stale)
                element = self._build(snapshot)
                parent.append(element)
                added.append(element)
        return MutationBatch(added=tuple(added), removed=tuple(removed))

    async def set_marker(self, elements: Sequence[PageElement], marker: str, *, enabled: bool) -> None:
        for element in elements:
            classes = [name for name in element.get_attribute_list("class") if name and name != marker]
            if enabled:
                classes.append(marker)
            if classes:
                element["class"] = classes
            else:
                element.attrs.pop("class", None)
        if self._marker_listener is not None and elements:
            await self._marker_listener([node_id(e) for e in elements], marker, enabled)
