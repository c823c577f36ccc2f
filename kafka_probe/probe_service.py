import asyncio
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

from .broker import AdminHandle, ClientLogBridge, KafkaAdminAdapter
from .diagnostics.classifier import HINTS, diagnose
from .diagnostics.sink import LogSink, mask
from .errors import ApplicationError, ConfigurationError, ProbeError, ProtocolError
from .models import BrokerEndpoint, Diagnosis, ErrorDetail, HealthVerdict, Layer, ProbeConfig, ProbeResult
from .network import NetworkProbe
from .utils.logger import get_logger


class ProbeState(str, Enum):
    INIT = "INIT"
    CONFIG_VALIDATED = "CONFIG_VALIDATED"
    DNS_TCP_PROBED = "DNS_TCP_PROBED"
    ADMIN_CONNECTING = "ADMIN_CONNECTING"
    ADMIN_CONNECTED = "ADMIN_CONNECTED"
    ADMIN_FAILED = "ADMIN_FAILED"
    TOPICS_LISTING = "TOPICS_LISTING"
    TOPICS_LISTED = "TOPICS_LISTED"
    TOPICS_FAILED = "TOPICS_FAILED"
    DONE = "DONE"


class ProbeOrchestrator:
    """Runs the layered connectivity check once and returns a HealthVerdict.

    Every configured broker gets DNS and TCP preflight checks, and the admin
    connect is attempted no matter how preflight went. Only an unusable
    broker list ends the run early.
    """

    def __init__(
        self,
        sink: LogSink,
        network_probe: Optional[NetworkProbe] = None,
        adapter: Optional[KafkaAdminAdapter] = None,
    ):
        self.sink = sink
        self.network_probe = network_probe or NetworkProbe(sink)
        self.adapter = adapter or KafkaAdminAdapter(sink)
        self.logger = get_logger(__name__)
        self.state = ProbeState.INIT
        self.transitions: List[ProbeState] = [ProbeState.INIT]

    def _enter(self, state: ProbeState) -> None:
        self.logger.debug(f"Probe state {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)

    async def run(self, config: ProbeConfig) -> HealthVerdict:
        self.sink.add_secret(config.password)
        self._print_config(config)

        try:
            endpoints = config.endpoints()
        except ConfigurationError as e:
            self.sink.error(
                f"❌ {e.message}. KAFKA_BROKERS example: \"broker:9092\" or \"b1:9092,b2:9092\"",
                {"brokers_raw": config.brokers_raw},
            )
            self._enter(ProbeState.DONE)
            verdict = HealthVerdict(healthy=False, error=e)
            self._report(verdict)
            return verdict
        self._enter(ProbeState.CONFIG_VALIDATED)

        results: List[ProbeResult] = []
        diagnoses: List[Diagnosis] = []

        for pair in await self._preflight(endpoints, config):
            for result in pair:
                results.append(result)
                diagnoses.extend(self._diagnoses_for(result))
        self._enter(ProbeState.DNS_TCP_PROBED)

        handle: Optional[AdminHandle] = None
        topics: FrozenSet[str] = frozenset()
        error: Optional[ProbeError] = None
        healthy = False

        with ClientLogBridge(self.sink, verbose=config.verbose) as bridge:
            try:
                self._enter(ProbeState.ADMIN_CONNECTING)
                self.sink.info("⏳ Kafka admin.connect() ...")
                handle, error = await self._connect(config)
                error = self._with_client_evidence(error, bridge.drain())
                results.append(self._layer_result(Layer.AUTH_HANDSHAKE, error))

                if error is not None:
                    diagnoses.extend(self._report_failure(error, Layer.AUTH_HANDSHAKE))
                    self._enter(ProbeState.ADMIN_FAILED)
                else:
                    self.sink.info("✅ Kafka admin connected")
                    self._enter(ProbeState.ADMIN_CONNECTED)

                    self._enter(ProbeState.TOPICS_LISTING)
                    bridge.drain()
                    self.sink.info("⏳ Kafka admin.listTopics() ...")
                    topics, error = await self._list_topics(handle, config)
                    error = self._with_client_evidence(error, bridge.drain())
                    results.append(self._layer_result(Layer.ADMIN_CALL, error))

                    if error is not None:
                        diagnoses.extend(self._report_failure(error, Layer.ADMIN_CALL))
                        self._enter(ProbeState.TOPICS_FAILED)
                    else:
                        healthy = True
                        self.sink.info(f"✅ Kafka reachable. topics={len(topics)}")
                        if config.verbose:
                            self.sink.info(f"Topics sample: {', '.join(sorted(topics)[:10])}")
                        self._enter(ProbeState.TOPICS_LISTED)
            finally:
                if handle is not None:
                    await self.adapter.disconnect(handle)
                self._enter(ProbeState.DONE)

        verdict = HealthVerdict(
            healthy=healthy,
            results=tuple(results),
            diagnoses=tuple(diagnoses),
            topics=topics,
            error=error,
        )
        self._report(verdict)
        return verdict

    async def _preflight(
        self, endpoints: Tuple[BrokerEndpoint, ...], config: ProbeConfig
    ) -> List[Tuple[ProbeResult, ProbeResult]]:
        if config.parallel_preflight:
            self.sink.info(f"Preflight: {len(endpoints)} brokers in parallel")
            # gather returns results in argument order, i.e. by endpoint index
            return list(
                await asyncio.gather(
                    *(self.network_probe.probe(endpoint, config.tcp_timeout_ms) for endpoint in endpoints)
                )
            )

        pairs = []
        for endpoint in endpoints:
            self.sink.info(f"Preflight: broker={endpoint}")
            pairs.append(await self.network_probe.probe(endpoint, config.tcp_timeout_ms))
        return pairs

    async def _connect(self, config: ProbeConfig) -> Tuple[Optional[AdminHandle], Optional[ProbeError]]:
        try:
            return await self.adapter.connect_admin(config), None
        except ProtocolError as e:
            return None, e
        except Exception as e:
            return None, ProtocolError(str(e) or type(e).__name__, cause=e)

    async def _list_topics(
        self, handle: AdminHandle, config: ProbeConfig
    ) -> Tuple[FrozenSet[str], Optional[ProbeError]]:
        try:
            return await self.adapter.list_topics(handle, config), None
        except ApplicationError as e:
            return frozenset(), e
        except Exception as e:
            return frozenset(), ApplicationError(str(e) or type(e).__name__, cause=e)

    @staticmethod
    def _with_client_evidence(error: Optional[ProbeError], evidence: List[str]) -> Optional[ProbeError]:
        """Append what the client logged while failing, so the root reason gets classified."""
        if error is None or not evidence:
            return error
        return type(error)(f"{error.message} | client: {'; '.join(evidence)}", cause=error.cause)

    @staticmethod
    def _layer_result(layer: Layer, error: Optional[ProbeError]) -> ProbeResult:
        # Cluster-wide layers: the client picks brokers itself, so no per-broker attribution.
        if error is None:
            return ProbeResult(layer=layer, ok=True)
        hypotheses = tuple(diagnosis.hypothesis for diagnosis in diagnose(error.message, layer))
        return ProbeResult(
            layer=layer,
            ok=False,
            error=ErrorDetail(message=error.message, hypotheses=hypotheses, error_type=error.error_type),
        )

    @staticmethod
    def _diagnoses_for(result: ProbeResult) -> List[Diagnosis]:
        if result.error is None:
            return []
        return [
            Diagnosis(
                hypothesis=hypothesis,
                layer=result.layer,
                evidence=result.error.message,
                hint=HINTS[hypothesis],
                broker=result.broker,
            )
            for hypothesis in result.error.hypotheses
        ]

    def _report_failure(self, error: ProbeError, layer: Layer) -> List[Diagnosis]:
        self.sink.error("❌ Kafka connection FAILED", {"layer": layer})
        self.sink.error(
            f"Error: {error.error_type} - {error.message}",
            {"error": {"name": error.error_type, "message": error.message, "stack": error.stack}},
        )
        diagnoses = diagnose(error.message, layer)
        for diagnosis in diagnoses:
            self.sink.error(f"Hint: {diagnosis.hint}", {"hypothesis": diagnosis.hypothesis, "layer": layer})
        return diagnoses

    def _print_config(self, config: ProbeConfig) -> None:
        self.sink.info("================ Kafka Check Boot ================")
        self.sink.info(f"clientId={config.client_id}")
        self.sink.info(f'brokersRaw="{config.brokers_raw}"')
        self.sink.info(f"ssl={config.ssl_enabled}")
        self.sink.info(f"sasl={config.mechanism if config.credentials else 'none'}")
        self.sink.info(f"username={mask(config.username) if config.username else '(empty)'}")
        self.sink.info(f"password={mask(config.password) if config.password else '(empty)'}")
        self.sink.info(
            f"timeouts: connectionTimeout={config.connection_timeout_ms}ms "
            f"requestTimeout={config.request_timeout_ms}ms tcpTimeout={config.tcp_timeout_ms}ms"
        )
        self.sink.info(f"retries: retries={config.retry.retries} initialRetryTime={config.retry.initial_backoff_ms}ms")
        self.sink.info(f"verbose={config.verbose}")
        self.sink.info("==================================================")
        if bool(config.username) != bool(config.password):
            self.sink.warn("Only one of username/password is set, connecting without SASL")

    def _report(self, verdict: HealthVerdict) -> None:
        context = {
            "healthy": verdict.healthy,
            "failed_layers": verdict.failed_layers,
            "hypotheses": sorted(h.value for h in verdict.hypotheses),
            "topics": len(verdict.topics),
            "exit_code": verdict.exit_code,
        }
        if verdict.healthy:
            self.sink.info("Kafka health verdict: HEALTHY", context)
        else:
            self.sink.error("Kafka health verdict: UNHEALTHY", context)
