"""
Exception hierarchy for the ET232 driver.

All exceptions inherit from :class:`EstimError` so callers can catch
broadly (``except EstimError``) or narrowly (``except TimeoutError``).
"""


class EstimError(Exception):
    """Base exception for all ET232 driver errors."""


class TransportError(EstimError):
    """Raised when reading from or writing to the serial link fails."""


class ConnectionError(TransportError):  # noqa: A001 – intentional shadow of builtin
    """Raised when the serial connection is unavailable or fails to open."""


class TimeoutError(TransportError):  # noqa: A001 – intentional shadow of builtin
    """Raised when a read ends before the line terminator arrives.

    Whatever bytes did arrive are kept on :attr:`partial`.
    """

    def __init__(self, message: str, partial: bytes = b"") -> None:
        super().__init__(message)
        self.partial = partial


class ProtocolParseError(EstimError):
    """Raised when a device response cannot be parsed."""


class InvalidSettingError(EstimError):
    """Raised when a named setting is not valid for the given register."""


class HandshakeTimeoutError(EstimError):
    """Raised when the power-on preamble is never seen during a handshake."""


class ValidationError(EstimError):
    """Raised when an argument or configuration file fails validation."""
