import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .models import ProbeConfig, RetryPolicy

_TRUE_VALUES = {"true", "1", "yes", "on"}


class Config:
    def __init__(self, config_path: str = "config.yml"):
        load_dotenv()

        self.config_path = Path(config_path)
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        # The probe usually runs as a sidecar configured from env only.
        if not self.config_path.exists():
            return {}

        with open(self.config_path, "r") as f:
            config = yaml.safe_load(f) or {}

        return self._substitute_env_vars(config)

    def _substitute_env_vars(self, config: Any) -> Any:
        if isinstance(config, dict):
            return {k: self._substitute_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            pattern = re.compile(r"\$\{([^}]+)}")
            matches = pattern.findall(config)
            result = config
            for var_name in matches:
                var_value = os.getenv(var_name, "")
                result = result.replace(f"${{{var_name}}}", var_value)
            return result
        else:
            return config

    def get(self, key: str, default: Any = None) -> Any:
        keys = key.split(".")
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def _setting(self, env_name: str, key: str, default: Any) -> Any:
        value = os.getenv(env_name)
        if value is not None and value.strip() != "":
            return value
        return self.get(key, default)

    def _bool_setting(self, env_name: str, key: str, default: bool) -> bool:
        value = self._setting(env_name, key, default)
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE_VALUES

    def _int_setting(self, env_name: str, key: str, default: int) -> int:
        value = self._setting(env_name, key, default)
        try:
            return int(str(value).strip())
        except ValueError:
            return default

    @property
    def brokers(self) -> str:
        value = self._setting("KAFKA_BROKERS", "kafka.brokers", "")
        if isinstance(value, list):
            return ",".join(str(item) for item in value)
        return str(value)

    @property
    def client_id(self) -> str:
        return str(self._setting("KAFKA_CLIENT_ID", "kafka.client-id", "kafka-preflight-probe"))

    @property
    def username(self) -> str:
        return os.getenv("KAFKA_USERNAME", "")

    @property
    def password(self) -> str:
        return os.getenv("KAFKA_PASSWORD", "")

    @property
    def ssl_enabled(self) -> bool:
        return self._bool_setting("KAFKA_SSL", "kafka.ssl", True)

    @property
    def ssl_ca_file(self) -> Optional[str]:
        value = self._setting("KAFKA_SSL_CA_FILE", "kafka.ssl-ca-file", None)
        return str(value) if value else None

    @property
    def sasl_mechanism(self) -> str:
        return str(self._setting("KAFKA_SASL_MECHANISM", "kafka.sasl-mechanism", "plain")).lower()

    @property
    def connection_timeout_ms(self) -> int:
        return self._int_setting("KAFKA_CONN_TIMEOUT_MS", "kafka.connection-timeout-ms", 8000)

    @property
    def request_timeout_ms(self) -> int:
        return self._int_setting("KAFKA_REQ_TIMEOUT_MS", "kafka.request-timeout-ms", 30000)

    @property
    def retries(self) -> int:
        return self._int_setting("KAFKA_RETRIES", "kafka.retries", 6)

    @property
    def retry_initial_ms(self) -> int:
        return self._int_setting("KAFKA_RETRY_INITIAL_MS", "kafka.retry-initial-ms", 300)

    @property
    def verbose(self) -> bool:
        return self._bool_setting("KAFKA_DEBUG", "kafka.debug", True)

    @property
    def tcp_timeout_ms(self) -> int:
        return self._int_setting("KAFKA_TCP_TIMEOUT_MS", "kafka.tcp-timeout-ms", 4000)

    @property
    def parallel_preflight(self) -> bool:
        return self._bool_setting("KAFKA_PREFLIGHT_PARALLEL", "kafka.preflight-parallel", False)

    @property
    def exit_on_failure(self) -> bool:
        return self._bool_setting("KAFKA_EXIT_ON_FAILURE", "probe.exit-on-failure", False)

    @property
    def heartbeat_interval(self) -> int:
        return self.get("probe.heartbeat-interval", 60)

    @property
    def log_level(self) -> str:
        return self.get("logging.level", "INFO")

    @property
    def log_file(self) -> Optional[str]:
        return self.get("logging.file")

    @property
    def telegram_enabled(self) -> bool:
        return self.get("telegram.enabled", False)

    @property
    def telegram_bot_token(self) -> str:
        return os.getenv("TELEGRAM_BOT_TOKEN", "")

    @property
    def telegram_chat_id(self) -> str:
        return os.getenv("TELEGRAM_CHAT_ID", "")

    @property
    def telegram_topic_id(self) -> int | None:
        topic_id = os.getenv("TELEGRAM_TOPIC_ID", "")
        if topic_id and topic_id.strip():
            try:
                return int(topic_id.strip())
            except ValueError:
                return None
        return None

    @property
    def telegram_locale(self) -> str:
        return self.get("telegram.locale", "en")

    @property
    def telegram_notify_success(self) -> bool:
        return self.get("telegram.notify.success", True)

    @property
    def telegram_notify_failure(self) -> bool:
        return self.get("telegram.notify.failure", True)

    @property
    def timezone(self) -> str:
        return os.getenv("TIMEZONE", "UTC")

    @property
    def time_format(self) -> str:
        return os.getenv("TIME_FORMAT", "%d.%m.%Y %H:%M:%S")

    def probe_config(self) -> ProbeConfig:
        return ProbeConfig(
            brokers_raw=self.brokers,
            client_id=self.client_id,
            ssl_enabled=self.ssl_enabled,
            ssl_ca_file=self.ssl_ca_file,
            username=self.username,
            password=self.password,
            sasl_mechanism=self.sasl_mechanism,
            connection_timeout_ms=self.connection_timeout_ms,
            request_timeout_ms=self.request_timeout_ms,
            retry=RetryPolicy(retries=self.retries, initial_backoff_ms=self.retry_initial_ms),
            verbose=self.verbose,
            tcp_timeout_ms=self.tcp_timeout_ms,
            parallel_preflight=self.parallel_preflight,
        )
