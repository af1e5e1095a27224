"""Typed domain exceptions for the tilt state machine.

Storage failures are not part of this hierarchy: storage backends raise
shared.storage.StorageError (an OSError), which the state machine logs and
survives. Everything here is a programming or precondition error that
must surface to the caller.
"""


class ChessBreakError(Exception):
    """Base exception for tilt state machine errors."""


class IdentityNotFoundError(ChessBreakError):
    """The viewer's identity could not be resolved from the page.

    Fatal precondition: the state machine refuses to start without it, and
    the participant guard refuses to run without it.
    """
