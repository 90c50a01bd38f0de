"""Exception types raised by the yeelight-console protocol client."""

from __future__ import annotations


class YeelightError(Exception):
    """Base class for all client failures."""


class ConnectError(YeelightError):
    """Raised when the TCP connection to the bulb cannot be established."""


class BulbIOError(YeelightError):
    """Raised when reading from or writing to an open socket fails."""


class DecodeError(YeelightError):
    """Raised when an incoming line is not a response or a notification."""


class Disconnected(YeelightError):
    """Raised for pending and future calls once the connection is closed."""


class RequestTimeout(YeelightError, TimeoutError):
    """Raised when a caller-imposed deadline expires before the response."""


class ProtocolError(YeelightError):
    """The bulb answered a request with an error object."""

    def __init__(self, code: int, message: str):
        super().__init__(code, message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"Error (code {self.code}): {self.message}"
