"""Domain-level exceptions.

Services raise these errors to express contract violations.
Route handlers catch them and map them to HTTP responses or SSE error events.
"""


class DomainError(Exception):
    """Base class for all domain errors."""


class SessionError(DomainError):
    """Misuse of a StreamWordSession."""


class SessionNotCompletedError(SessionError):
    """Store payload requested before the session reached COMPLETED."""

    def __init__(self, message: str = "StreamWordSession has not completed streaming yet"):
        super().__init__(message)


class SessionAlreadyStartedError(SessionError):
    """stream() called on a session that has already been started."""

    def __init__(self, message: str = "StreamWordSession.stream() can only be consumed once"):
        super().__init__(message)
