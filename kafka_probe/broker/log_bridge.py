import logging
from typing import List, Optional

from ..diagnostics.sink import LogSink, map_client_level

CLIENT_LOGGER = "aiokafka"

# LogRecord attributes the client sets through ``extra`` or its message args.
_CONTEXT_ATTRS = ("broker", "node_id", "client_id", "correlation_id", "size")

MAX_EVIDENCE = 5


class ClientLogBridge(logging.Handler):
    """Forward the Kafka client's own log records into a LogSink.

    Used as a context manager around the admin calls: the handler is attached
    to the ``aiokafka`` logger on enter and the logger's previous state is
    restored on exit.

    The client logs the socket-level reason for a failed bootstrap
    ("Unable connect to ...: [Errno 104] Connection reset by peer") and then
    raises a bare "Unable to bootstrap" error. Warning and error lines are
    therefore kept as evidence until the caller drains them.
    """

    def __init__(self, sink: LogSink, verbose: bool, logger_name: str = CLIENT_LOGGER):
        super().__init__(level=logging.DEBUG)
        self.sink = sink
        self.verbose = verbose
        self.client_logger = logging.getLogger(logger_name)
        self._saved_level: Optional[int] = None
        self._saved_propagate = True
        self._evidence: List[str] = []

    def __enter__(self) -> "ClientLogBridge":
        self._saved_level = self.client_logger.level
        self._saved_propagate = self.client_logger.propagate
        self.client_logger.setLevel(logging.DEBUG if self.verbose else logging.WARNING)
        self.client_logger.propagate = False
        self.client_logger.addHandler(self)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.client_logger.removeHandler(self)
        self.client_logger.propagate = self._saved_propagate
        if self._saved_level is not None:
            self.client_logger.setLevel(self._saved_level)

    def drain(self) -> List[str]:
        """Return the evidence collected since the last drain and forget it."""
        evidence, self._evidence = self._evidence, []
        return evidence

    def emit(self, record: logging.LogRecord) -> None:
        level = map_client_level(record.levelno, self.verbose)
        if level is None:
            return
        try:
            if record.levelno >= logging.WARNING:
                self._collect(record)

            message = f"[aiokafka][{record.levelname}][{record.name}] {record.getMessage()}"
            context = {attr: getattr(record, attr) for attr in _CONTEXT_ATTRS if hasattr(record, attr)}
            if record.exc_info and record.exc_info[1] is not None:
                error = record.exc_info[1]
                context["error"] = {
                    "name": type(error).__name__,
                    "message": str(error),
                    "stack_top": _format_exception(record.exc_info),
                }
            self.sink.emit(level, message, context or None)
        except Exception:
            self.handleError(record)

    def _collect(self, record: logging.LogRecord) -> None:
        text = record.getMessage()
        errors = [arg for arg in _record_args(record) if isinstance(arg, BaseException)]
        if record.exc_info and record.exc_info[1] is not None:
            errors.append(record.exc_info[1])
        # Some socket errors stringify to "", the type name is all there is.
        names = sorted({type(error).__name__ for error in errors})
        if names:
            text = f"{text} [{', '.join(names)}]"
        if text not in self._evidence and len(self._evidence) < MAX_EVIDENCE:
            self._evidence.append(text)


def _record_args(record: logging.LogRecord) -> tuple:
    if isinstance(record.args, tuple):
        return record.args
    return ()


def _format_exception(exc_info) -> str:
    return logging.Formatter().formatException(exc_info)
