"""
Application error taxonomy

Services raise these; app.main maps them to JSON responses with the
status_code carried by each class.
"""

from typing import Optional


class AppError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(AppError):
    """No valid user session"""

    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class NotConnectedError(AppError):
    """The user has no linked Google account"""

    status_code = 404

    def __init__(
        self,
        message: str = "No Google account connected. Please reconnect your Google Calendar.",
    ):
        super().__init__(message)


class RefreshFailedError(AppError):
    """Refresh grant rejected or impossible - the user must re-authenticate"""

    status_code = 401


class RemoteApiError(AppError):
    """Non-2xx response from the Google Calendar API"""

    status_code = 502

    def __init__(self, status: int, message: Optional[str] = None):
        super().__init__(message or f"Google Calendar API error: {status}")
        self.status = status


class InvalidLinkError(AppError):
    """Unknown RSVP token"""

    status_code = 404

    def __init__(self, message: str = "Invalid RSVP link"):
        super().__init__(message)


class PersistenceError(AppError):
    """Storage failure; the underlying message is passed through"""

    status_code = 500


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    """Optimistic concurrency check failed"""

    status_code = 409


class InvalidEventError(AppError):
    """Event fields violate an invariant (e.g. end not after start)"""

    status_code = 422


class OAuthExchangeError(AppError):
    """Authorization code could not be exchanged for tokens"""

    status_code = 400


# Errors that mean "cannot talk to Google as this user at all"
AUTHENTICATION_ERRORS = (AuthError, NotConnectedError, RefreshFailedError)
