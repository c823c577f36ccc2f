import traceback
from typing import Optional


class ProbeError(Exception):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    @property
    def error_type(self) -> str:
        if self.cause is not None:
            return type(self.cause).__name__
        return type(self).__name__

    @property
    def stack(self) -> str:
        if self.cause is None or self.cause.__traceback__ is None:
            return ""
        return "".join(traceback.format_exception(type(self.cause), self.cause, self.cause.__traceback__))


class ConfigurationError(ProbeError):
    """Empty or unparseable broker list. Ends the run immediately."""


class NetworkError(ProbeError):
    """DNS or TCP failure for a single broker. Recorded, probing continues."""


class ProtocolError(ProbeError):
    """Handshake or authentication failure. Halts the admin sub-sequence."""


class ApplicationError(ProbeError):
    """Admin call failure after a successful handshake."""
