from .notifier import TelegramNotifier
from .events import VerdictReport
from .formatter import MessageFormatter

__all__ = [
    "TelegramNotifier",
    "VerdictReport",
    "MessageFormatter",
]
