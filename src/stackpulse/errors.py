"""Domain exceptions raised by services and translated to HTTP errors by routers."""

from fastapi import HTTPException


class StackPulseError(Exception):
    """Base class for domain errors. ``status_code`` is the HTTP status routers map it to."""

    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class EntityNotFoundError(StackPulseError):
    status_code = 404


class StateConflictError(StackPulseError):
    status_code = 409


class ConcurrentUpdateError(StateConflictError):
    """A versioned row kept changing under an optimistic update."""


class MembershipTransitionError(StateConflictError):
    """An (action, state) pair that is not in the membership transition table."""

    def __init__(self, action: str, state: str) -> None:
        super().__init__(f"Cannot {action} from state '{state}'")
        self.action = action
        self.state = state


class PermissionDeniedError(StackPulseError):
    status_code = 403


class PostingNotAllowedError(PermissionDeniedError):
    """The posting gate rejected a question or answer for a forum."""


class DuplicateRewardError(StackPulseError):
    """An explicitly requested badge or banner is already owned."""

    status_code = 400


class DuplicateValueError(StackPulseError):
    status_code = 400


def http_error(exc: Exception) -> HTTPException:
    """Map a service error to the HTTPException a router raises. Plain ValueErrors become 400."""
    if isinstance(exc, StackPulseError):
        return HTTPException(status_code=exc.status_code, detail=exc.detail)
    return HTTPException(status_code=400, detail=str(exc))
