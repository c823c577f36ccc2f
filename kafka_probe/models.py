from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional, Set, Tuple

from .errors import ConfigurationError, ProbeError

DEFAULT_KAFKA_PORT = 9092


class Layer(str, Enum):
    DNS = "DNS"
    TCP = "TCP"
    AUTH_HANDSHAKE = "AUTH_HANDSHAKE"
    ADMIN_CALL = "ADMIN_CALL"


class Hypothesis(str, Enum):
    SASL_AUTH_FAILURE = "SASL_AUTH_FAILURE"
    TLS_MISMATCH = "TLS_MISMATCH"
    DNS_UNRESOLVED = "DNS_UNRESOLVED"
    NETWORK_UNREACHABLE = "NETWORK_UNREACHABLE"
    LEADER_METADATA_MISMATCH = "LEADER_METADATA_MISMATCH"
    CONNECTION_RESET = "CONNECTION_RESET"


class SaslMechanism(str, Enum):
    PLAIN = "PLAIN"
    SCRAM_SHA_256 = "SCRAM-SHA-256"
    SCRAM_SHA_512 = "SCRAM-SHA-512"


_MECHANISM_ALIASES = {
    "plain": SaslMechanism.PLAIN.value,
    "scram-256": SaslMechanism.SCRAM_SHA_256.value,
    "scram-sha-256": SaslMechanism.SCRAM_SHA_256.value,
    "scram-512": SaslMechanism.SCRAM_SHA_512.value,
    "scram-sha-512": SaslMechanism.SCRAM_SHA_512.value,
}


def normalize_mechanism(selector: str) -> str:
    # Unknown selectors go to the client as-is; it rejects them during connect.
    key = (selector or "plain").strip().lower()
    return _MECHANISM_ALIASES.get(key, key.upper())


@dataclass(frozen=True)
class BrokerEndpoint:
    host: str
    port: int = DEFAULT_KAFKA_PORT

    @classmethod
    def parse(cls, token: str) -> "BrokerEndpoint":
        token = token.strip()
        if token.startswith("["):
            host, sep, rest = token[1:].partition("]")
            if not sep:
                raise ConfigurationError(f"invalid broker address: {token!r}")
            port_str = rest[1:] if rest.startswith(":") else rest
        elif token.count(":") == 1:
            host, _, port_str = token.partition(":")
        else:
            host, port_str = token, ""

        if not host:
            raise ConfigurationError(f"invalid broker address: {token!r}")
        if not port_str:
            return cls(host=host)

        try:
            port = int(port_str)
        except ValueError:
            raise ConfigurationError(f"invalid broker port in {token!r}") from None
        if not 0 < port < 65536:
            raise ConfigurationError(f"broker port out of range in {token!r}")
        return cls(host=host, port=port)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def parse_brokers(raw: str) -> Tuple[BrokerEndpoint, ...]:
    tokens = [token.strip() for token in (raw or "").split(",")]
    endpoints = tuple(BrokerEndpoint.parse(token) for token in tokens if token)
    if not endpoints:
        raise ConfigurationError("no brokers configured")
    return endpoints


@dataclass(frozen=True)
class RetryPolicy:
    retries: int = 6
    initial_backoff_ms: int = 300
    max_backoff_ms: int = 8000
    multiplier: float = 2.0

    @property
    def attempts(self) -> int:
        return max(self.retries, 0) + 1

    def backoff_ms(self, attempt: int) -> float:
        delay = self.initial_backoff_ms * (self.multiplier ** max(attempt - 1, 0))
        return min(delay, self.max_backoff_ms)


@dataclass(frozen=True)
class ProbeConfig:
    brokers_raw: str
    client_id: str = "kafka-preflight-probe"
    ssl_enabled: bool = True
    ssl_ca_file: Optional[str] = None
    username: str = ""
    password: str = ""
    sasl_mechanism: str = "plain"
    connection_timeout_ms: int = 8000
    request_timeout_ms: int = 30000
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    verbose: bool = True
    tcp_timeout_ms: int = 4000
    parallel_preflight: bool = False

    def endpoints(self) -> Tuple[BrokerEndpoint, ...]:
        return parse_brokers(self.brokers_raw)

    @property
    def bootstrap_servers(self) -> List[str]:
        return [str(endpoint) for endpoint in self.endpoints()]

    @property
    def credentials(self) -> Optional[Tuple[str, str]]:
        if self.username and self.password:
            return self.username, self.password
        return None

    @property
    def mechanism(self) -> str:
        return normalize_mechanism(self.sasl_mechanism)

    @property
    def security_protocol(self) -> str:
        if self.credentials:
            return "SASL_SSL" if self.ssl_enabled else "SASL_PLAINTEXT"
        return "SSL" if self.ssl_enabled else "PLAINTEXT"


@dataclass(frozen=True)
class ErrorDetail:
    message: str
    hypotheses: Tuple[Hypothesis, ...] = ()
    error_type: Optional[str] = None


@dataclass(frozen=True)
class ProbeResult:
    layer: Layer
    ok: bool
    broker: Optional[str] = None
    error: Optional[ErrorDetail] = None
    addresses: Tuple[str, ...] = ()
    elapsed_ms: Optional[float] = None


@dataclass(frozen=True)
class Diagnosis:
    hypothesis: Hypothesis
    layer: Layer
    evidence: str
    hint: str
    broker: Optional[str] = None


@dataclass(frozen=True)
class HealthVerdict:
    healthy: bool
    results: Tuple[ProbeResult, ...] = ()
    diagnoses: Tuple[Diagnosis, ...] = ()
    topics: FrozenSet[str] = frozenset()
    error: Optional[ProbeError] = None

    @property
    def hypotheses(self) -> Set[Hypothesis]:
        return {diagnosis.hypothesis for diagnosis in self.diagnoses}

    @property
    def failed_layers(self) -> List[Layer]:
        layers = []
        for result in self.results:
            if not result.ok and result.layer not in layers:
                layers.append(result.layer)
        return layers

    @property
    def exit_code(self) -> int:
        return 0 if self.healthy else 1

    def results_for(self, layer: Layer) -> List[ProbeResult]:
        return [result for result in self.results if result.layer == layer]
