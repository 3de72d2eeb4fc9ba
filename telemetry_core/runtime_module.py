"""
Базовый класс для встроенных модулей Runtime (RuntimeModule).

RuntimeModule - инфраструктурные домены (logger, monitoring), которые:
- регистрируются напрямую в TelemetryRuntime, без PluginManager
- используют только Core API (event_bus, service_registry, poller)

КОНТРАКТ LIFECYCLE:
- register() вызывается ровно один раз при создании runtime
- start() вызывается ровно один раз при runtime.start()
- stop() вызывается ровно один раз при runtime.stop()
- on_catalog_changed() вызывается, когда на работающем runtime меняется каталог
- Порядок: __init__ → register() → start() → stop()
"""

from abc import ABC, abstractmethod
from typing import Any


class RuntimeModule(ABC):
    """Базовый класс для встроенных модулей Runtime."""

    def __init__(self, runtime: Any):
        """
        Args:
            runtime: экземпляр TelemetryRuntime
        """
        self.runtime = runtime

    @property
    @abstractmethod
    def name(self) -> str:
        """Уникальное имя модуля (например, "logger", "monitoring")."""

    async def register(self) -> None:
        """Регистрация сервисов и подписок. По умолчанию - no-op."""

    async def start(self) -> None:
        """Запуск модуля. По умолчанию - no-op."""

    async def on_catalog_changed(self) -> None:
        """runtime.catalog изменился (плагин запущен или остановлен). По умолчанию - no-op."""

    async def stop(self) -> None:
        """
        Остановка модуля.

        Должна быть безопасной, даже если start() не вызывался.
        """
