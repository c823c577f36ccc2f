import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

import pytest

from kafka_probe.broker import AdminHandle
from kafka_probe.diagnostics import LogSink
from kafka_probe.errors import ApplicationError, ProtocolError
from kafka_probe.models import BrokerEndpoint, ErrorDetail, Hypothesis, Layer, ProbeConfig, ProbeResult


@pytest.fixture
def sink(caplog):
    caplog.set_level(logging.INFO)
    return LogSink(logger=logging.getLogger("tests.sink"), secrets=["hunter2pass"])


class FakeNetworkProbe:
    """Returns canned DNS/TCP results per host and records every call."""

    def __init__(self, failing_hosts=()):
        self.failing_hosts = set(failing_hosts)
        self.calls: List[BrokerEndpoint] = []

    async def probe(self, endpoint: BrokerEndpoint, timeout_ms: Optional[int] = None) -> Tuple[ProbeResult, ProbeResult]:
        self.calls.append(endpoint)
        broker = str(endpoint)
        if endpoint.host in self.failing_hosts:
            return (
                ProbeResult(
                    layer=Layer.DNS,
                    ok=False,
                    broker=broker,
                    error=ErrorDetail("[Errno -2] Name or service not known", (Hypothesis.DNS_UNRESOLVED,)),
                ),
                ProbeResult(
                    layer=Layer.TCP,
                    ok=False,
                    broker=broker,
                    error=ErrorDetail("[Errno -2] Name or service not known", (Hypothesis.DNS_UNRESOLVED,)),
                ),
            )
        return (
            ProbeResult(layer=Layer.DNS, ok=True, broker=broker, addresses=("10.0.0.1",)),
            ProbeResult(layer=Layer.TCP, ok=True, broker=broker),
        )


@dataclass
class FakeAdapter:
    connect_error: Optional[str] = None
    list_error: Optional[str] = None
    topics: FrozenSet[str] = frozenset({"orders", "payments"})
    connects: int = 0
    lists: int = 0
    disconnected: List[AdminHandle] = field(default_factory=list)
    configs: List[ProbeConfig] = field(default_factory=list)

    async def connect_admin(self, config: ProbeConfig) -> AdminHandle:
        self.connects += 1
        self.configs.append(config)
        if self.connect_error:
            raise ProtocolError(self.connect_error)
        return AdminHandle(client=object(), bootstrap_servers=",".join(config.bootstrap_servers))

    async def list_topics(self, handle: AdminHandle, config: ProbeConfig) -> FrozenSet[str]:
        self.lists += 1
        if self.list_error:
            raise ApplicationError(self.list_error)
        return self.topics

    async def disconnect(self, handle: AdminHandle) -> None:
        self.disconnected.append(handle)


class FakeAdminClient:
    """Stand-in for AIOKafkaAdminClient driven by a shared script."""

    instances: List["FakeAdminClient"] = []

    def __init__(self, script: Dict, **options):
        self.script = script
        self.options = options
        self.started = False
        self.closed = False
        FakeAdminClient.instances.append(self)

    async def start(self):
        errors = self.script.setdefault("start_errors", [])
        if errors:
            raise errors.pop(0)
        self.started = True

    async def list_topics(self):
        errors = self.script.setdefault("list_errors", [])
        if errors:
            raise errors.pop(0)
        return self.script.get("topics", ["orders"])

    async def close(self):
        self.closed = True
        if self.script.get("close_error"):
            raise self.script["close_error"]


@pytest.fixture
def fake_admin_factory():
    FakeAdminClient.instances = []
    script: Dict = {}

    def factory(**options):
        return FakeAdminClient(script, **options)

    factory.script = script
    factory.instances = FakeAdminClient.instances
    return factory


async def no_sleep(seconds: float) -> None:
    return None
