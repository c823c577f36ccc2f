import asyncio
import socket
import time
from typing import List, Optional, Tuple

from ..diagnostics.classifier import TCP_FAILURE_HINT, classify
from ..diagnostics.sink import LogSink
from ..errors import NetworkError
from ..models import BrokerEndpoint, ErrorDetail, Hypothesis, Layer, ProbeResult


async def resolve_host(host: str) -> List[str]:
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        raise NetworkError(str(e) or type(e).__name__, cause=e) from e

    addresses: List[str] = []
    for info in infos:
        address = info[4][0]
        if address not in addresses:
            addresses.append(address)
    return addresses


async def tcp_connect(host: str, port: int, timeout_ms: int) -> None:
    """Open and immediately release a TCP connection.

    Raises NetworkError with ``timeout after {N}ms`` or the socket error text.
    """
    writer: Optional[asyncio.StreamWriter] = None
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise NetworkError(f"timeout after {timeout_ms}ms", cause=e) from e
    except (OSError, UnicodeError) as e:
        # UnicodeError: the host is not a valid IDNA name (empty or overlong label).
        raise NetworkError(str(e) or type(e).__name__, cause=e) from e
    finally:
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass


class NetworkProbe:
    def __init__(self, sink: LogSink, timeout_ms: int = 4000):
        self.sink = sink
        self.timeout_ms = timeout_ms

    async def probe(self, endpoint: BrokerEndpoint, timeout_ms: Optional[int] = None) -> Tuple[ProbeResult, ProbeResult]:
        dns_result = await self.check_dns(endpoint)
        # TCP runs even when DNS failed; the connect path resolves on its own.
        tcp_result = await self.check_tcp(endpoint, timeout_ms or self.timeout_ms)
        return dns_result, tcp_result

    async def check_dns(self, endpoint: BrokerEndpoint) -> ProbeResult:
        broker = str(endpoint)
        started = time.monotonic()
        try:
            addresses = await resolve_host(endpoint.host)
        except NetworkError as e:
            elapsed = _elapsed_ms(started)
            self.sink.error(
                f"DNS FAIL: {endpoint.host} -> {e.message}",
                {"broker": broker, "layer": Layer.DNS, "elapsed_ms": elapsed},
            )
            return ProbeResult(
                layer=Layer.DNS,
                ok=False,
                broker=broker,
                error=ErrorDetail(message=e.message, hypotheses=(Hypothesis.DNS_UNRESOLVED,), error_type=e.error_type),
                elapsed_ms=elapsed,
            )

        elapsed = _elapsed_ms(started)
        self.sink.info(
            f"DNS OK: {endpoint.host} -> {', '.join(addresses)}",
            {"broker": broker, "layer": Layer.DNS, "elapsed_ms": elapsed},
        )
        return ProbeResult(layer=Layer.DNS, ok=True, broker=broker, addresses=tuple(addresses), elapsed_ms=elapsed)

    async def check_tcp(self, endpoint: BrokerEndpoint, timeout_ms: int) -> ProbeResult:
        broker = str(endpoint)
        started = time.monotonic()
        try:
            await tcp_connect(endpoint.host, endpoint.port, timeout_ms)
        except NetworkError as e:
            elapsed = _elapsed_ms(started)
            hypotheses = tuple(classify(e.message)) or (Hypothesis.NETWORK_UNREACHABLE,)
            self.sink.error(
                f"TCP FAIL: {broker} ({e.message})",
                {"broker": broker, "layer": Layer.TCP, "elapsed_ms": elapsed, "hint": TCP_FAILURE_HINT},
            )
            return ProbeResult(
                layer=Layer.TCP,
                ok=False,
                broker=broker,
                error=ErrorDetail(message=e.message, hypotheses=hypotheses, error_type=e.error_type),
                elapsed_ms=elapsed,
            )

        elapsed = _elapsed_ms(started)
        self.sink.info(f"TCP OK: {broker} (connected)", {"broker": broker, "layer": Layer.TCP, "elapsed_ms": elapsed})
        return ProbeResult(layer=Layer.TCP, ok=True, broker=broker, elapsed_ms=elapsed)


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 1)
