import json
import logging
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional

from ..utils.logger import get_logger

SENSITIVE_KEYS = frozenset(
    {"password", "username", "secret", "token", "credentials", "sasl_plain_password", "sasl_plain_username"}
)
STACK_KEYS = frozenset({"stack", "stack_top", "traceback"})


class Level(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


_LOGGING_LEVELS = {
    Level.INFO: logging.INFO,
    Level.WARN: logging.WARNING,
    Level.ERROR: logging.ERROR,
}


def mask(value: Optional[str]) -> str:
    if not value:
        return ""
    if len(value) <= 4:
        return "****"
    return value[:2] + "****" + value[-2:]


def map_client_level(levelno: int, verbose: bool) -> Optional[Level]:
    """Map a client library log level onto a sink level, or None to drop it."""
    if levelno >= logging.ERROR:
        return Level.ERROR
    if levelno >= logging.WARNING:
        return Level.WARN
    return Level.INFO if verbose else None


def truncate_stack(stack: Any, max_lines: int) -> str:
    lines = [line for line in str(stack or "").splitlines() if line.strip()]
    return " | ".join(lines[:max_lines])


class LogSink:
    """Structured diagnostic records on top of a stdlib logger.

    Every record passes through redaction before it reaches the logger:
    values under sensitive keys are masked, registered secrets are masked
    wherever they appear in a string, and stack traces are cut down to
    ``stack_lines`` leading lines.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, secrets: Iterable[str] = (), stack_lines: int = 8):
        self.logger = logger or get_logger(__name__)
        self.stack_lines = stack_lines
        self._secrets: List[str] = []
        for secret in secrets:
            self.add_secret(secret)

    def add_secret(self, secret: Optional[str]) -> None:
        if secret and secret not in self._secrets:
            self._secrets.append(secret)
            # Longest first so a secret containing another is replaced whole.
            self._secrets.sort(key=len, reverse=True)

    def emit(self, level: Level, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        text = self.scrub(message)
        if context:
            payload = self.redact(context)
            text = f"{text} {json.dumps(payload, default=str, ensure_ascii=False)}"
        self.logger.log(_LOGGING_LEVELS[Level(level)], text)

    def info(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self.emit(Level.INFO, message, context)

    def warn(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self.emit(Level.WARN, message, context)

    def error(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self.emit(Level.ERROR, message, context)

    def scrub(self, text: str) -> str:
        text = str(text)
        for secret in self._secrets:
            text = text.replace(secret, mask(secret))
        return text

    def redact(self, value: Any, key: Optional[str] = None) -> Any:
        if key is not None and key.lower() in SENSITIVE_KEYS and value:
            return mask(str(value))
        if key is not None and key.lower() in STACK_KEYS:
            return self.scrub(truncate_stack(value, self.stack_lines))
        if isinstance(value, Mapping):
            return {str(k): self.redact(v, str(k)) for k, v in value.items() if v is not None}
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self.redact(item) for item in value]
        if isinstance(value, BaseException):
            return self.scrub(f"{type(value).__name__}: {value}")
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, (bool, int, float)) or value is None:
            return value
        return self.scrub(str(value))
