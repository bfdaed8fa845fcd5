"""
Exception hierarchy shared by the recorder, sessions and combinators.

Timeout errors live next to the timeout resolver in
``pyrecorder.core.timeout``; everything raised by the package itself
derives from RecorderError so callers can catch one base class.
"""

__all__ = ["RecorderError", "SessionError"]


class RecorderError(Exception):
    """
    Base class for errors raised by the step scheduler.

    From Dave Cheney: "Errors are values"
    Custom exception with context, not generic Exception.
    """

    pass


class SessionError(RecorderError):
    """Session bookkeeping was misused (e.g. restoring the root session)."""

    def __init__(self, message: str, session_name: str | None = None):
        super().__init__(message)
        self.session_name = session_name

    def __repr__(self) -> str:
        return f"SessionError({str(self)!r}, session_name={self.session_name!r})"
