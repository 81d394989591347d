"""Error taxonomy raised by the rule and identity layers.

Every error carries an HTTP status so ``main.py`` can render it with a single
exception handler. Nothing here retries; callers see the failure immediately.
"""
from __future__ import annotations

from fastapi import status


class JobBoardError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


class ValidationError(JobBoardError):
    """A required field is missing, blank or malformed."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class AuthenticationError(JobBoardError):
    """No valid session: missing, expired or revoked token, or bad credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(JobBoardError):
    """The actor lacks the role or ownership the operation needs."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(JobBoardError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(JobBoardError):
    """Duplicate action, e.g. a second application to the same job."""

    status_code = status.HTTP_409_CONFLICT


class InvalidStateError(JobBoardError):
    """Status transition not allowed from the record's current state."""

    status_code = status.HTTP_409_CONFLICT


class CollaboratorError(JobBoardError):
    """The persistence or identity backend failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
