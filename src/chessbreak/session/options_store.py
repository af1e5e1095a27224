"""Read-only view of the user's policy options."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from chessbreak.logic.settings import TiltOptions

if TYPE_CHECKING:
    from shared.storage import KeyValueStorage

logger = structlog.get_logger()


class OptionsStore:
    """Load TiltOptions from the options storage area, merged over defaults.

    The state machine never writes options; the settings surface does, and
    announces it with an OPTIONS_UPDATED signal.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage

    async def load(self) -> TiltOptions:
        """Return the stored options, or the defaults when they cannot be read or validated."""
        try:
            stored = await self._storage.get(TiltOptions.storage_keys())
        except OSError:
            logger.exception("failed to read options, using defaults")
            return TiltOptions()
        try:
            return TiltOptions.model_validate(stored)
        except ValidationError as e:
            logger.warning("stored options are invalid, using defaults", errors=e.error_count())
            return TiltOptions()
