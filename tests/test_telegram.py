import asyncio

from aiogram.exceptions import TelegramNetworkError, TelegramRetryAfter

from kafka_probe.errors import ProtocolError
from kafka_probe.models import Diagnosis, HealthVerdict, Hypothesis, Layer, ProbeResult
from kafka_probe.telegram import MessageFormatter, TelegramNotifier, VerdictReport


def failed_verdict():
    return HealthVerdict(
        healthy=False,
        results=(
            ProbeResult(layer=Layer.TCP, ok=True, broker="b1:9092"),
            ProbeResult(layer=Layer.AUTH_HANDSHAKE, ok=False),
        ),
        diagnoses=(
            Diagnosis(Hypothesis.TLS_MISMATCH, Layer.AUTH_HANDSHAKE, "closed connection <tls>", "hint"),
            Diagnosis(Hypothesis.CONNECTION_RESET, Layer.AUTH_HANDSHAKE, "closed connection <tls>", "hint"),
        ),
        error=ProtocolError("closed connection <tls>"),
    )


def test_report_from_verdict():
    report = VerdictReport.from_verdict(failed_verdict(), client_id="probe", brokers="b1:9092", finished_at="now")

    assert report.healthy is False
    assert report.failed_layers == ["AUTH_HANDSHAKE"]
    assert report.hypotheses == ["CONNECTION_RESET", "TLS_MISMATCH"]
    assert report.error_message == "closed connection <tls>"


def test_format_unhealthy_escapes_html():
    report = VerdictReport.from_verdict(failed_verdict(), client_id="probe", brokers="b1:9092", finished_at="now")

    message = MessageFormatter(locale="en").format_verdict(report)

    assert "FAILED" in message
    assert "TLS_MISMATCH" in message
    assert "&lt;tls&gt;" in message
    assert "<tls>" not in message


def test_format_healthy_in_russian():
    report = VerdictReport.from_verdict(
        HealthVerdict(healthy=True, topics=frozenset({"orders"})),
        client_id="probe",
        brokers="b1:9092",
        finished_at="now",
    )

    message = MessageFormatter(locale="ru").format_verdict(report)

    assert "Kafka доступна" in message


def test_unknown_locale_falls_back_to_english():
    assert MessageFormatter(locale="de").locale == "en"


# ─────────────────────────────────────────────
#  Notifier
# ─────────────────────────────────────────────
class FakeSession:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


class FakeBot:
    def __init__(self, failures=()):
        self.failures = list(failures)
        self.sent = []
        self.session = FakeSession()

    async def send_message(self, **kwargs):
        if self.failures:
            raise self.failures.pop(0)
        self.sent.append(kwargs)


def make_notifier(bot, sleeps, **overrides):
    async def record_sleep(seconds):
        sleeps.append(seconds)

    options = dict(bot_token="123:abc", chat_id="-100500", topic_id=7, bot_factory=lambda token: bot, sleep=record_sleep)
    options.update(overrides)
    return TelegramNotifier(**options)


def healthy_report():
    return VerdictReport(client_id="probe", brokers="b1:9092", healthy=True, finished_at="now", topic_count=2)


def test_verdict_sent_once_to_topic():
    bot = FakeBot()
    sleeps = []

    assert asyncio.run(make_notifier(bot, sleeps).send_verdict(healthy_report())) is True

    assert len(bot.sent) == 1
    assert bot.sent[0]["chat_id"] == "-100500"
    assert bot.sent[0]["message_thread_id"] == 7
    assert "Kafka reachable" in bot.sent[0]["text"]
    assert bot.session.closed
    assert sleeps == []


def test_rate_limit_and_network_errors_are_retried():
    bot = FakeBot(
        failures=[
            TelegramRetryAfter(method=None, message="Too Many Requests", retry_after=3),
            TelegramNetworkError(method=None, message="Bad Gateway"),
        ]
    )
    sleeps = []

    assert asyncio.run(make_notifier(bot, sleeps, retry_delay=0.5).send_verdict(healthy_report())) is True

    assert sleeps == [3.0, 1.0]
    assert len(bot.sent) == 1


def test_gives_up_after_retry_attempts():
    bot = FakeBot(failures=[TelegramNetworkError(method=None, message="Bad Gateway")] * 3)
    sleeps = []

    assert asyncio.run(make_notifier(bot, sleeps, retry_attempts=3).send_verdict(healthy_report())) is False

    assert bot.sent == []
    assert sleeps == [1.0, 2.0]
    assert bot.session.closed


def test_success_notifications_can_be_switched_off():
    bot = FakeBot()

    assert asyncio.run(make_notifier(bot, [], notify_success=False).send_verdict(healthy_report())) is False
    assert bot.sent == []


def test_notifier_disabled_without_token():
    notifier = TelegramNotifier(bot_token="", chat_id="", enabled=True)

    assert notifier.enabled is False
    assert asyncio.run(notifier.send_verdict(healthy_report())) is False
