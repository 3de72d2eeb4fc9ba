"""
Конфигурация Telemetry Runtime.

Минимальные настройки: частота опроса, источник статистики, буфер emitter,
HTTP endpoint экспортёра и логирование.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Config:
    """Конфигурация Telemetry Runtime."""

    # Частота опроса polling групп (миллисекунды)
    poll_rate_ms: int = 5000

    # Источник статистики наблюдаемого runtime: "snapshot" или "http"
    stat_source: str = "snapshot"
    # Базовый URL introspection endpoint (для stat_source == "http")
    stat_source_url: Optional[str] = None
    # Тайм-аут запроса к StatSource (секунды)
    stat_source_timeout: float = 2.0

    # Размер буфера emitter (samples)
    emitter_buffer_size: int = 1024

    # Префикс имён prometheus метрик (например, "my_app")
    metrics_prefix: str = ""

    # HTTP endpoint экспортёра (/metrics, /health); port 0 - не поднимать
    http_host: str = "127.0.0.1"
    http_port: int = 9568

    # Тайм-аут для shutdown (секунды)
    shutdown_timeout: int = 10

    # Logging
    # "DEBUG" | "INFO" | "WARNING" | "ERROR"
    log_level: str = "INFO"
    # "text" | "json"
    log_format: str = "text"

    def validate(self) -> None:
        """
        Валидировать конфигурацию.

        Raises:
            ValueError: если конфигурация невалидна
        """
        if isinstance(self.poll_rate_ms, bool) or not isinstance(self.poll_rate_ms, int) or self.poll_rate_ms <= 0:
            raise ValueError(f"poll_rate_ms must be positive integer, got: {self.poll_rate_ms!r}")

        if self.stat_source not in ("snapshot", "http"):
            raise ValueError(f"stat_source must be 'snapshot' or 'http', got: {self.stat_source!r}")
        if self.stat_source == "http":
            if not self.stat_source_url:
                raise ValueError("stat_source_url must be non-empty for http stat source")
            if not self.stat_source_url.startswith(("http://", "https://")):
                raise ValueError(f"stat_source_url must be http(s) URL, got: {self.stat_source_url!r}")
        if not isinstance(self.stat_source_timeout, (int, float)) or self.stat_source_timeout <= 0:
            raise ValueError(f"stat_source_timeout must be positive number, got: {self.stat_source_timeout!r}")

        if not isinstance(self.emitter_buffer_size, int) or self.emitter_buffer_size <= 0:
            raise ValueError(f"emitter_buffer_size must be positive integer, got: {self.emitter_buffer_size!r}")

        if not isinstance(self.metrics_prefix, str):
            raise ValueError("metrics_prefix must be string")

        if not isinstance(self.http_port, int) or self.http_port < 0 or self.http_port > 65535:
            raise ValueError(f"http_port must be integer between 0 and 65535, got: {self.http_port!r}")

        if not isinstance(self.shutdown_timeout, int) or self.shutdown_timeout <= 0:
            raise ValueError(f"shutdown_timeout must be positive integer, got: {self.shutdown_timeout}")

        self.log_level = str(self.log_level).upper()
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ValueError(f"log_level must be one of DEBUG, INFO, WARNING, ERROR, got: {self.log_level!r}")

        if self.log_format not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")

    @classmethod
    def from_env(cls) -> "Config":
        """
        Создать конфигурацию из переменных окружения TELEMETRY_*.

        Raises:
            ValueError: если конфигурация невалидна
        """
        config = cls(
            poll_rate_ms=int(os.getenv("TELEMETRY_POLL_RATE_MS", "5000")),
            stat_source=os.getenv("TELEMETRY_STAT_SOURCE", "snapshot").lower(),
            stat_source_url=os.getenv("TELEMETRY_STAT_SOURCE_URL") or None,
            stat_source_timeout=float(os.getenv("TELEMETRY_STAT_SOURCE_TIMEOUT", "2.0")),
            emitter_buffer_size=int(os.getenv("TELEMETRY_EMITTER_BUFFER_SIZE", "1024")),
            metrics_prefix=os.getenv("TELEMETRY_METRICS_PREFIX", ""),
            http_host=os.getenv("TELEMETRY_HTTP_HOST", "127.0.0.1"),
            http_port=int(os.getenv("TELEMETRY_HTTP_PORT", "9568")),
            shutdown_timeout=int(os.getenv("TELEMETRY_SHUTDOWN_TIMEOUT", "10")),
            log_level=os.getenv("TELEMETRY_LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("TELEMETRY_LOG_FORMAT", "text").lower(),
        )
        config.validate()
        return config
