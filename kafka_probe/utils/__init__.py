from .logger import setup_logger, get_logger
from .time import format_timestamp

__all__ = ["setup_logger", "get_logger", "format_timestamp"]
