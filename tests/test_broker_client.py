import asyncio
import ssl

import pytest

from kafka_probe.broker import AdminHandle, KafkaAdminAdapter, describe_error
from kafka_probe.errors import ApplicationError, ProtocolError
from kafka_probe.models import ProbeConfig, RetryPolicy


def make_config(**overrides):
    options = dict(
        brokers_raw="b1:9092,b2",
        client_id="probe-test",
        ssl_enabled=False,
        retry=RetryPolicy(retries=2, initial_backoff_ms=100),
        connection_timeout_ms=500,
        request_timeout_ms=500,
    )
    options.update(overrides)
    return ProbeConfig(**options)


def make_adapter(sink, factory, sleeps=None):
    async def record_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    return KafkaAdminAdapter(sink, admin_factory=factory, sleep=record_sleep)


def test_security_options_passed_through(sink, fake_admin_factory):
    config = make_config(ssl_enabled=True, username="alice", password="hunter2pass", sasl_mechanism="scram-512")
    adapter = make_adapter(sink, fake_admin_factory)

    handle = asyncio.run(adapter.connect_admin(config))

    options = handle.client.options
    assert options["bootstrap_servers"] == ["b1:9092", "b2:9092"]
    assert options["client_id"] == "probe-test"
    assert options["security_protocol"] == "SASL_SSL"
    assert options["sasl_mechanism"] == "SCRAM-SHA-512"
    assert options["sasl_plain_username"] == "alice"
    assert options["sasl_plain_password"] == "hunter2pass"
    assert isinstance(options["ssl_context"], ssl.SSLContext)


def test_no_sasl_options_without_credentials(sink, fake_admin_factory):
    handle = asyncio.run(make_adapter(sink, fake_admin_factory).connect_admin(make_config(username="alice")))
    assert "sasl_mechanism" not in handle.client.options
    assert "ssl_context" not in handle.client.options
    assert handle.client.options["security_protocol"] == "PLAINTEXT"


def test_connect_retries_with_backoff_then_succeeds(sink, fake_admin_factory):
    fake_admin_factory.script["start_errors"] = [OSError("Connection reset by peer")]
    sleeps = []
    adapter = make_adapter(sink, fake_admin_factory, sleeps)

    handle = asyncio.run(adapter.connect_admin(make_config()))

    assert handle.client.started
    assert sleeps == [0.1]
    first, second = fake_admin_factory.instances
    assert first.closed, "failed client must be released before the next attempt"
    assert not second.closed


def test_connect_exhaustion_raises_protocol_error(sink, fake_admin_factory):
    fake_admin_factory.script["start_errors"] = [OSError("SSL handshake failed")] * 3
    sleeps = []
    adapter = make_adapter(sink, fake_admin_factory, sleeps)

    with pytest.raises(ProtocolError) as excinfo:
        asyncio.run(adapter.connect_admin(make_config()))

    assert "SSL handshake failed" in excinfo.value.message
    assert excinfo.value.error_type == "OSError"
    assert len(fake_admin_factory.instances) == 3
    assert all(client.closed for client in fake_admin_factory.instances)
    assert sleeps == [0.1, 0.2]


def test_connect_timeout_is_reported(sink):
    class HangingClient:
        closed = False

        def __init__(self, **options):
            pass

        async def start(self):
            await asyncio.sleep(10)

        async def close(self):
            HangingClient.closed = True

    adapter = make_adapter(sink, HangingClient)
    config = make_config(connection_timeout_ms=20, retry=RetryPolicy(retries=0))

    with pytest.raises(ProtocolError, match="timed out"):
        asyncio.run(adapter.connect_admin(config))
    assert HangingClient.closed


def test_list_topics_returns_set(sink, fake_admin_factory):
    fake_admin_factory.script["topics"] = ["orders", "payments", "orders"]
    adapter = make_adapter(sink, fake_admin_factory)

    async def scenario():
        handle = await adapter.connect_admin(make_config())
        return await adapter.list_topics(handle, make_config())

    assert asyncio.run(scenario()) == frozenset({"orders", "payments"})


def test_list_topics_failure_raises_application_error(sink, fake_admin_factory):
    fake_admin_factory.script["list_errors"] = [RuntimeError("Broker not available")] * 3
    adapter = make_adapter(sink, fake_admin_factory)

    async def scenario():
        handle = await adapter.connect_admin(make_config())
        return await adapter.list_topics(handle, make_config())

    with pytest.raises(ApplicationError, match="Broker not available"):
        asyncio.run(scenario())


def test_disconnect_swallows_errors(sink, caplog, fake_admin_factory):
    fake_admin_factory.script["close_error"] = RuntimeError("already closed")
    adapter = make_adapter(sink, fake_admin_factory)
    handle = AdminHandle(client=fake_admin_factory(), bootstrap_servers="b1:9092")

    asyncio.run(adapter.disconnect(handle))

    assert handle.client.closed
    assert "Disconnect error: already closed" in caplog.text


def test_describe_error_includes_cause_chain():
    try:
        try:
            raise OSError("[Errno -2] Name or service not known")
        except OSError as inner:
            raise ConnectionError("Unable to bootstrap from [('badhost', 9092)]") from inner
    except ConnectionError as outer:
        text = describe_error(outer)

    assert text.startswith("ConnectionError: Unable to bootstrap")
    assert "Name or service not known" in text


def test_describe_error_does_not_repeat_kafka_error_name():
    from aiokafka.errors import KafkaConnectionError

    text = describe_error(KafkaConnectionError("Unable to bootstrap from [('127.0.0.1', 9092, <AddressFamily.AF_INET: 2>)]"))

    assert text.startswith("KafkaConnectionError: Unable to bootstrap")
    assert text.count("KafkaConnectionError") == 1


def test_unsupported_mechanism_is_not_retried(sink):
    calls = []

    def rejecting_factory(**options):
        calls.append(options)
        raise ValueError("only `PLAIN`, `GSSAPI`, `SCRAM-SHA-256`, `SCRAM-SHA-512` sasl_mechanism are supported")

    sleeps = []
    adapter = make_adapter(sink, rejecting_factory, sleeps)
    config = make_config(username="alice", password="hunter2pass", sasl_mechanism="kerberos-ish")

    with pytest.raises(ProtocolError, match="sasl_mechanism are supported"):
        asyncio.run(adapter.connect_admin(config))

    assert len(calls) == 1
    assert sleeps == []


def test_missing_ca_file_fails_before_any_client_is_built(sink, fake_admin_factory, tmp_path):
    sleeps = []
    adapter = make_adapter(sink, fake_admin_factory, sleeps)
    config = make_config(ssl_enabled=True, ssl_ca_file=str(tmp_path / "missing-ca.pem"))

    with pytest.raises(ProtocolError) as excinfo:
        asyncio.run(adapter.connect_admin(config))

    assert excinfo.value.error_type == "FileNotFoundError"
    assert fake_admin_factory.instances == []
    assert sleeps == []
