"""Rating-delta extraction strategies.

A strategy takes the text fragments of a result panel (in document order)
and returns the signed rating change it finds, or None. It is kept apart
from outcome classification so the heuristic can be swapped without
touching trigger logic.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable

# "+8", "-12", and the typographic minus sign used by some pages.
_SIGNED_DELTA = re.compile(r"(?<![\w+\-−])([+\-−])(\d+)\b")
_DISPLAYED_RATING = re.compile(r"\((\d{1,4})\)")


class RatingDeltaExtractor(Protocol):
    def __call__(self, fragments: Iterable[str]) -> int | None: ...


def extract_signed_delta(fragments: Iterable[str]) -> int | None:
    """Return the first signed integer found in the fragments, or None."""
    for fragment in fragments:
        match = _SIGNED_DELTA.search(fragment)
        if match is not None:
            sign, digits = match.groups()
            value = int(digits)
            return value if sign == "+" else -value
    return None


def parse_displayed_rating(text: str) -> int | None:
    """Return a parenthesised rating such as ``"magnus (2850)"`` -> 2850."""
    match = _DISPLAYED_RATING.search(text)
    return int(match.group(1)) if match else None
