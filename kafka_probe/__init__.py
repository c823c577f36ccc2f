from .config import Config
from .errors import ApplicationError, ConfigurationError, NetworkError, ProbeError, ProtocolError
from .models import (
    BrokerEndpoint,
    Diagnosis,
    HealthVerdict,
    Hypothesis,
    Layer,
    ProbeConfig,
    ProbeResult,
    RetryPolicy,
)
from .probe_service import ProbeOrchestrator, ProbeState

__all__ = [
    "Config",
    "ApplicationError",
    "ConfigurationError",
    "NetworkError",
    "ProbeError",
    "ProtocolError",
    "BrokerEndpoint",
    "Diagnosis",
    "HealthVerdict",
    "Hypothesis",
    "Layer",
    "ProbeConfig",
    "ProbeResult",
    "RetryPolicy",
    "ProbeOrchestrator",
    "ProbeState",
]
