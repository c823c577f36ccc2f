from html import escape
from pathlib import Path
from typing import Optional

from fluent.runtime import FluentLocalization, FluentResourceLoader

from .events import VerdictReport


class MessageFormatter:
    SUPPORTED_LOCALES = ["en", "ru"]
    DEFAULT_LOCALE = "en"

    def __init__(self, locale: str = "en", locales_dir: Optional[Path] = None):
        self.locale = locale if locale in self.SUPPORTED_LOCALES else self.DEFAULT_LOCALE

        if locales_dir is None:
            locales_dir = Path(__file__).parent.parent / "locales"

        self._l10n = FluentLocalization(
            locales=[self.locale, self.DEFAULT_LOCALE],
            resource_ids=["messages.ftl"],
            resource_loader=FluentResourceLoader(str(locales_dir / "{locale}")),
        )

    def format_verdict(self, report: VerdictReport) -> str:
        args = {
            "client": escape(report.client_id),
            "brokers": escape(report.brokers or "-"),
            "time": report.finished_at,
        }
        if report.healthy:
            return self._l10n.format_value("probe-healthy", {**args, "topics": report.topic_count})

        return self._l10n.format_value(
            "probe-unhealthy",
            {
                **args,
                "layers": ", ".join(report.failed_layers) or "-",
                "hypotheses": ", ".join(report.hypotheses) or "-",
                "error": escape(report.error_message or "-"),
            },
        )
