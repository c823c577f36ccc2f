from .client import AdminHandle, KafkaAdminAdapter, describe_error
from .log_bridge import ClientLogBridge

__all__ = ["AdminHandle", "KafkaAdminAdapter", "describe_error", "ClientLogBridge"]
