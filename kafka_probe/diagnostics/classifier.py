from typing import Dict, List, Optional, Tuple

from ..models import Diagnosis, Hypothesis, Layer

PATTERNS: Tuple[Tuple[Hypothesis, Tuple[str, ...]], ...] = (
    (Hypothesis.SASL_AUTH_FAILURE, ("sasl", "authentication", "not authorized")),
    (Hypothesis.TLS_MISMATCH, ("ssl", "tls", "certificate", "self signed")),
    (
        Hypothesis.DNS_UNRESOLVED,
        (
            "getaddrinfo",
            "gaierror",
            "enotfound",
            "name resolution",
            "name or service not known",
            "nodename nor servname",
        ),
    ),
    (
        Hypothesis.NETWORK_UNREACHABLE,
        ("econnrefused", "connection refused", "connectionrefusederror", "timed out", "etimedout"),
    ),
    (Hypothesis.LEADER_METADATA_MISMATCH, ("broker not available", "not a leader", "metadata")),
    (
        Hypothesis.CONNECTION_RESET,
        ("closed connection", "connection reset", "connectionreseterror", "broken pipe"),
    ),
)

HINTS: Dict[Hypothesis, str] = {
    Hypothesis.SASL_AUTH_FAILURE: (
        "SASL auth problem (wrong username/password, wrong mechanism, broker not configured for SASL)."
    ),
    Hypothesis.TLS_MISMATCH: (
        "TLS problem (ssl setting wrong or missing CA). If the broker uses a private CA, "
        "mount it and set KAFKA_SSL_CA_FILE."
    ),
    Hypothesis.DNS_UNRESOLVED: "DNS/hostname not resolvable from this host (wrong broker host).",
    Hypothesis.NETWORK_UNREACHABLE: "Network timeout or refusal (firewall/VPC routing/NetworkPolicy/wrong port).",
    Hypothesis.LEADER_METADATA_MISMATCH: (
        "advertised.listeners issue (broker returns a host/IP that this client cannot reach)."
    ),
    Hypothesis.CONNECTION_RESET: (
        "Broker is closing the connection. Most common causes: TLS mismatch (ssl true/false wrong), "
        "wrong port/listener, SASL mismatch, or an L4 proxy/firewall resetting."
    ),
}

TCP_FAILURE_HINT = (
    "Likely reason: firewall/VPC routing/NetworkPolicy/wrong port/endpoint not reachable from this host."
)


def classify(message: Optional[str]) -> List[Hypothesis]:
    """Return every hypothesis whose patterns occur in ``message``.

    Matching is a case-insensitive substring search. Results follow the order
    of ``PATTERNS`` so the output does not depend on where in the message a
    pattern occurs.
    """
    text = (message or "").lower()
    return [hypothesis for hypothesis, patterns in PATTERNS if any(p in text for p in patterns)]


def diagnose(message: str, layer: Layer, broker: Optional[str] = None) -> List[Diagnosis]:
    return [
        Diagnosis(hypothesis=hypothesis, layer=layer, evidence=message, hint=HINTS[hypothesis], broker=broker)
        for hypothesis in classify(message)
    ]
