from .classifier import classify, diagnose, HINTS
from .sink import LogSink, Level, mask, map_client_level

__all__ = ["classify", "diagnose", "HINTS", "LogSink", "Level", "mask", "map_client_level"]
