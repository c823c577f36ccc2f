import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Type

from aiokafka.admin import AIOKafkaAdminClient
from aiokafka.errors import KafkaConfigurationError
from aiokafka.helpers import create_ssl_context

from ..diagnostics.sink import LogSink
from ..errors import ApplicationError, ProbeError, ProtocolError
from ..models import ProbeConfig, RetryPolicy
from ..utils.logger import get_logger

# Configuration problems the client reports at construction time; retrying cannot help.
NON_RETRYABLE = (ValueError, KafkaConfigurationError)


@dataclass
class AdminHandle:
    client: Any
    bootstrap_servers: str


def describe_error(error: BaseException) -> str:
    """Render an exception with its cause chain.

    Client errors often wrap the socket or resolver error that explains them,
    and the classifier needs to see that text.
    """
    parts = []
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        name = type(current).__name__
        text = str(current)
        # KafkaError.__str__ already leads with the class name.
        if not text:
            parts.append(name)
        elif text.startswith(name):
            parts.append(text)
        else:
            parts.append(f"{name}: {text}")
        current = current.__cause__ or current.__context__
    return " <- ".join(parts)


class KafkaAdminAdapter:
    def __init__(
        self,
        sink: LogSink,
        admin_factory: Callable[..., Any] = AIOKafkaAdminClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.sink = sink
        self.logger = get_logger(__name__)
        self.admin_factory = admin_factory
        self.sleep = sleep

    def client_options(self, config: ProbeConfig) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "bootstrap_servers": config.bootstrap_servers,
            "client_id": config.client_id,
            "request_timeout_ms": config.request_timeout_ms,
            "retry_backoff_ms": config.retry.initial_backoff_ms,
            "security_protocol": config.security_protocol,
        }
        if config.ssl_enabled:
            options["ssl_context"] = create_ssl_context(cafile=config.ssl_ca_file)
        if config.credentials:
            username, password = config.credentials
            options["sasl_mechanism"] = config.mechanism
            options["sasl_plain_username"] = username
            options["sasl_plain_password"] = password
        return options

    async def connect_admin(self, config: ProbeConfig) -> AdminHandle:
        bootstrap = ",".join(config.bootstrap_servers)
        try:
            options = self.client_options(config)
        except (OSError, ValueError) as e:
            # Missing or unreadable CA file: every attempt would fail the same way.
            raise ProtocolError(describe_error(e), cause=e) from e

        async def attempt_connect() -> AdminHandle:
            client = self.admin_factory(**options)
            try:
                await asyncio.wait_for(client.start(), timeout=config.connection_timeout_ms / 1000)
            except BaseException:
                await self._close_quietly(client)
                raise
            return AdminHandle(client=client, bootstrap_servers=bootstrap)

        return await self._with_retry("admin.connect()", attempt_connect, config.retry, ProtocolError)

    async def list_topics(self, handle: AdminHandle, config: ProbeConfig) -> FrozenSet[str]:
        async def attempt_list() -> FrozenSet[str]:
            topics = await asyncio.wait_for(handle.client.list_topics(), timeout=config.request_timeout_ms / 1000)
            return frozenset(topics)

        return await self._with_retry("admin.listTopics()", attempt_list, config.retry, ApplicationError)

    async def disconnect(self, handle: AdminHandle) -> None:
        try:
            self.sink.info("Disconnecting Kafka admin...")
            await handle.client.close()
            self.sink.info("Kafka admin disconnected")
        except Exception as e:
            self.sink.warn(f"Disconnect error: {e}", {"error": {"name": type(e).__name__, "message": str(e)}})

    async def _with_retry(
        self,
        operation: str,
        call: Callable[[], Awaitable[Any]],
        policy: RetryPolicy,
        error_cls: Type[ProbeError],
    ) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await call()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if isinstance(e, asyncio.TimeoutError):
                    message = f"{operation} timed out"
                else:
                    message = describe_error(e)
                if attempt >= policy.attempts or isinstance(e, NON_RETRYABLE):
                    raise error_cls(message, cause=e) from e

                delay_ms = policy.backoff_ms(attempt)
                self.sink.warn(
                    f"{operation} failed (attempt {attempt}/{policy.attempts}), retrying in {delay_ms:.0f}ms",
                    {"error": message},
                )
                await self.sleep(delay_ms / 1000)

    async def _close_quietly(self, client: Any) -> None:
        try:
            await client.close()
        except Exception as e:
            self.logger.debug(f"Ignoring close error after failed start: {e}")
