"""Errors raised by the cache layers."""


class CanceledRequestContextError(Exception):
    """Raised when the client cancels the request."""

    def __init__(self, message: str = "The user canceled the request") -> None:
        super().__init__(message)