import asyncio
import signal
import sys

from .config import Config
from .diagnostics import LogSink
from .models import HealthVerdict
from .probe_service import ProbeOrchestrator
from .telegram import TelegramNotifier, VerdictReport
from .utils.logger import setup_logger
from .utils.time import format_timestamp


class GracefulExit(SystemExit):
    code = 0


def raise_graceful_exit(signum, frame):
    raise GracefulExit()


async def keep_alive(interval: int, logger) -> None:
    # Leaves the container running so an operator can exec in and inspect DNS/routes.
    logger.warning("Keeping process alive for debugging...")
    while True:
        await asyncio.sleep(interval)
        logger.debug("alive")


async def settle(verdict: HealthVerdict, config: Config, logger) -> int:
    """Keep the process alive whatever the verdict, unless told to exit with it."""
    if not config.exit_on_failure:
        await keep_alive(config.heartbeat_interval, logger)
    return verdict.exit_code


def build_report(verdict: HealthVerdict, config: Config, sink: LogSink) -> VerdictReport:
    report = VerdictReport.from_verdict(
        verdict,
        client_id=config.client_id,
        brokers=config.brokers,
        finished_at=format_timestamp(None, config.timezone, config.time_format),
    )
    if report.error_message:
        report.error_message = sink.scrub(report.error_message)
    return report


async def main() -> int:
    config = Config()

    logger = setup_logger(name="kafka-preflight-probe", level=config.log_level, log_file=config.log_file)

    signal.signal(signal.SIGTERM, raise_graceful_exit)
    signal.signal(signal.SIGINT, raise_graceful_exit)

    logger.info("Process started, running Kafka preflight probe")

    sink = LogSink(secrets=[config.password])
    orchestrator = ProbeOrchestrator(sink)

    notifier = TelegramNotifier(
        bot_token=config.telegram_bot_token,
        chat_id=config.telegram_chat_id,
        topic_id=config.telegram_topic_id,
        locale=config.telegram_locale,
        enabled=config.telegram_enabled,
        notify_success=config.telegram_notify_success,
        notify_failure=config.telegram_notify_failure,
    )

    exit_code = 0
    try:
        verdict = await orchestrator.run(config.probe_config())
        await notifier.send_verdict(build_report(verdict, config, sink))
        exit_code = await settle(verdict, config, logger)
    except (GracefulExit, KeyboardInterrupt):
        logger.info("Shutting down gracefully")
        exit_code = 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        exit_code = 1

    logger.info("Kafka preflight probe stopped")
    return exit_code


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
