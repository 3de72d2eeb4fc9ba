"""
Logger Helper - простой wrapper для логирования в core компонентах.

ВАЖНО: этот helper только для core компонентов (runtime, poller, emitter,
event_bus, plugin_manager). Плагины логируют через публичный API:
    await runtime.service_registry.call("logger.log", level="info", message="...", plugin="...")

Реальная логика логирования находится в telemetry_modules/logger/module.py.
До регистрации LoggerModule (или без runtime) сообщения пишутся в stderr.
"""

import sys
from typing import Any, Optional


LEVELS = ("debug", "info", "warning", "error")


async def log(runtime: Optional[Any], level: str, message: str, **context: Any) -> None:
    """
    Записать лог сообщение через сервис logger.log.

    Args:
        runtime: экземпляр TelemetryRuntime (если None - fallback в stderr)
        level: уровень логирования (debug, info, warning, error)
        message: сообщение
        **context: дополнительный контекст
    """
    level = (level or "info").lower()
    if level not in LEVELS:
        level = "info"

    registry = getattr(runtime, "service_registry", None)
    if registry is not None:
        try:
            if await registry.has_service("logger.log"):
                await registry.call("logger.log", level=level, message=message, **context)
                return
        except Exception:
            # Сломанный логгер не должен ронять вызывающий код
            pass

    log_message = f"[{level.upper()}] {message}"
    if context:
        log_message += f" {context}"
    print(log_message, file=sys.stderr)


async def debug(runtime: Optional[Any], message: str, **context: Any) -> None:
    """Логировать debug сообщение."""
    await log(runtime, "debug", message, **context)


async def info(runtime: Optional[Any], message: str, **context: Any) -> None:
    """Логировать info сообщение."""
    await log(runtime, "info", message, **context)


async def warning(runtime: Optional[Any], message: str, **context: Any) -> None:
    """Логировать warning сообщение."""
    await log(runtime, "warning", message, **context)


async def error(runtime: Optional[Any], message: str, **context: Any) -> None:
    """Логировать error сообщение."""
    await log(runtime, "error", message, **context)
