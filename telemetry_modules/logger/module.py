"""
LoggerModule - встроенный модуль логирования.

Регистрируется первым при старте TelemetryRuntime и предоставляет сервис
`logger.log` для централизованного логирования.

Формат (config.log_format):
- text: [LEVEL] [plugin/component] message (key=value ...)
- json: одна JSON-строка на событие (для ELK / Loki)

Пишет в stdout через выделенный logger "beam_telemetry"; root logger не трогает.
"""

import json
import logging
import sys
from typing import Any, Optional

from telemetry_core.runtime_module import RuntimeModule


LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# Ключи контекста, обозначающие источник сообщения
SOURCE_KEYS = ("plugin", "component", "module")


class LoggerModule(RuntimeModule):
    """Модуль логирования: сервис logger.log."""

    def __init__(self, runtime: Any):
        super().__init__(runtime)
        self._logger: Optional[logging.Logger] = None
        self._handler: Optional[logging.Handler] = None
        self._log_level = logging.INFO
        self._log_format = "text"

    @property
    def name(self) -> str:
        return "logger"

    async def register(self) -> None:
        """Создаёт logger с собственным handler и регистрирует сервис logger.log."""
        config = getattr(self.runtime, "config", None)
        level_name = getattr(config, "log_level", "INFO")
        self._log_level = getattr(logging, str(level_name).upper(), logging.INFO)
        self._log_format = getattr(config, "log_format", "text")

        self._logger = logging.getLogger("beam_telemetry")
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False
        self._handler = logging.StreamHandler(stream=sys.stdout)
        self._handler.setFormatter(logging.Formatter("%(message)s"))
        self._logger.addHandler(self._handler)

        await self.runtime.service_registry.register("logger.log", self._log_service)

    async def stop(self) -> None:
        """Отменяет регистрацию сервиса и снимает handler."""
        await self.runtime.service_registry.unregister("logger.log")
        if self._logger is not None and self._handler is not None:
            self._logger.removeHandler(self._handler)
        self._handler = None
        self._logger = None

    def format_record(self, level: str, message: str, context: dict[str, Any]) -> str:
        """Сформировать строку лога в текущем формате."""
        if self._log_format == "json":
            event: dict[str, Any] = {"level": level.upper(), "message": message}
            for key in SOURCE_KEYS:
                if context.get(key):
                    event[key] = context[key]
            safe_ctx: dict[str, Any] = {}
            for k, v in context.items():
                if k in SOURCE_KEYS:
                    continue
                if isinstance(v, (str, int, float, bool, type(None), dict, list)):
                    safe_ctx[k] = v
                else:
                    safe_ctx[k] = str(v)
            if safe_ctx:
                event["context"] = safe_ctx
            return json.dumps(event, ensure_ascii=False)

        parts = [f"[{level.upper()}]"]
        source = next((context[k] for k in SOURCE_KEYS if context.get(k)), None)
        if source:
            parts.append(f"[{source}]")
        parts.append(message)
        extra = {
            k: v for k, v in context.items()
            if k not in SOURCE_KEYS and isinstance(v, (str, int, float, bool, type(None)))
        }
        if extra:
            parts.append("(" + " ".join(f"{k}={v}" for k, v in extra.items()) + ")")
        return " ".join(parts)

    async def _log_service(self, level: str, message: str, **context: Any) -> None:
        """
        Сервис logger.log.

        Args:
            level: уровень логирования (debug, info, warning, error)
            message: сообщение
            **context: контекст (plugin, component, group, metric и др.)
        """
        lvl = (level or "").lower()
        if lvl not in LEVEL_MAP:
            lvl = "info"
        if LEVEL_MAP[lvl] < self._log_level or self._logger is None:
            return
        self._logger.log(LEVEL_MAP[lvl], self.format_record(lvl, message, context))
