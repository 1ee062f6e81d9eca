"""Errors raised by the game core.

Every error is local to one room. The transport reports it to the
requesting connection only and never broadcasts it. ``silent`` errors
(stale or out-of-phase intents) are dropped without a reply.
"""


class GameError(Exception):
    status_code = 400
    silent = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GameError):
    """Malformed intent payload."""


class PermissionDeniedError(GameError):
    """Non-host attempting a host-only action."""
    status_code = 403


class StateConflictError(GameError):
    """Intent is well formed but arrived in the wrong phase."""
    status_code = 409
    silent = True


class DuplicateJoinError(StateConflictError):
    """Identity is already present and connected."""
    silent = False


class NotFoundError(GameError):
    status_code = 404


class CapacityError(GameError):
    status_code = 409


class RoomFullError(CapacityError):
    pass
