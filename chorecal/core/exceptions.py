"""
Exception classes for ChoreCal.

The first group are HTTP exceptions raised by the API routers. The second
group is the calendar sync error taxonomy used by the engine itself; those
never carry HTTP semantics and are translated at the router boundary.
"""
from typing import Optional

from fastapi import HTTPException, status


# =============================================================================
# HTTP Exceptions
# =============================================================================


class NotFoundError(HTTPException):
    """Exception raised when a requested resource is not found."""

    def __init__(self, resource: str, id: str = None):
        detail = f"{resource} not found" + (f": {id}" if id else "")
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(HTTPException):
    """Exception raised when a request cannot be authenticated."""

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ValidationError(HTTPException):
    """Exception raised when request validation fails."""

    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


# =============================================================================
# Calendar Sync Errors
# =============================================================================


class CalendarSyncError(Exception):
    """Base class for calendar sync engine errors."""


class ConfigError(CalendarSyncError):
    """Provider application credentials are missing. No network call is made."""


class AuthError(CalendarSyncError):
    """The access token could not be renewed for this sync attempt."""


class NotConnectedError(CalendarSyncError):
    """No credential record exists or sync is turned off for the user."""


class ProviderError(CalendarSyncError):
    """A single call to the calendar provider failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_gone(self) -> bool:
        """True when the provider reports the resource no longer exists."""
        return self.status_code in (404, 410)


class InvalidTaskError(CalendarSyncError):
    """A task projection cannot be turned into a calendar event."""

    def __init__(self, task_id: str, message: str):
        super().__init__(f"Task {task_id}: {message}")
        self.task_id = task_id
