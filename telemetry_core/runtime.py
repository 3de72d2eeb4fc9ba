"""
TelemetryRuntime - главный класс runtime телеметрии.

Объединяет все компоненты:
- EventBus (конвейер samples)
- ServiceRegistry
- Emitter
- Poller
- PluginManager
- встроенные модули (logger, monitoring, api)
"""

import time
from typing import Any, Optional

from telemetry_core.clock import Clock
from telemetry_core.config import Config
from telemetry_core.emitter import Emitter, EventBusEmitter
from telemetry_core.event_bus import EventBus
from telemetry_core.logger_helper import info
from telemetry_core.metrics import MetricCatalog
from telemetry_core.plugin_manager import PluginManager
from telemetry_core.poller import Poller
from telemetry_core.runtime_module import RuntimeModule
from telemetry_core.service_registry import ServiceRegistry


def _builtin_modules(runtime: "TelemetryRuntime") -> list[RuntimeModule]:
    # logger должен быть первым: он нужен для логирования остальных
    from telemetry_modules.api import ApiModule
    from telemetry_modules.logger import LoggerModule
    from telemetry_modules.monitoring import MonitoringModule

    modules: list[RuntimeModule] = [LoggerModule(runtime), MonitoringModule(runtime)]
    if runtime.config.http_port != 0:
        modules.append(ApiModule(runtime))
    return modules


class TelemetryRuntime:
    """
    Главный класс runtime.

    Порядок старта:
    1. register() встроенных модулей (сервис logger.log доступен дальше)
    2. запуск emitter
    3. запуск плагинов - их группы регистрируются в Poller
    4. каталог пересобирается при каждом изменении групп в Poller
    5. start() модулей (экспортёр строит gauges по каталогу)
    6. запуск Poller - manual группы собираются, таймеры взводятся
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        emitter: Optional[Emitter] = None,
        clock: Optional[Clock] = None,
        modules: Optional[list[RuntimeModule]] = None,
    ):
        """
        Args:
            config: конфигурация (по умолчанию Config())
            emitter: свой Emitter (по умолчанию EventBusEmitter поверх event_bus)
            clock: часы для Poller (по умолчанию системные)
            modules: встроенные модули (по умолчанию logger, monitoring и api,
                если config.http_port не 0)
        """
        self.config = config or Config()
        self.config.validate()

        self.event_bus = EventBus(self)
        self.service_registry = ServiceRegistry()
        self.emitter = emitter or EventBusEmitter(
            self.event_bus,
            buffer_size=self.config.emitter_buffer_size,
            runtime=self,
        )
        self.poller = Poller(
            self.emitter,
            clock=clock,
            runtime=self,
            shutdown_timeout=float(self.config.shutdown_timeout),
            on_groups_changed=self._on_groups_changed,
        )
        self.plugin_manager = PluginManager(self)
        self.catalog = MetricCatalog([])

        self._modules: list[RuntimeModule] = modules if modules is not None else _builtin_modules(self)
        self._modules_registered = False
        self._running = False
        self._started_at: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def get_module(self, name: str) -> Optional[RuntimeModule]:
        for module in self._modules:
            if module.name == name:
                return module
        return None

    async def register_modules(self) -> None:
        """Зарегистрировать встроенные модули (идемпотентно)."""
        if self._modules_registered:
            return
        for module in self._modules:
            await module.register()
        self._modules_registered = True

    async def start(self) -> None:
        """Запустить runtime (повторный вызов - no-op)."""
        if self._running:
            return

        await self.register_modules()
        if isinstance(self.emitter, EventBusEmitter):
            await self.emitter.start()

        await self.plugin_manager.start_all()

        for module in self._modules:
            await module.start()

        await self.poller.start()
        self._started_at = time.time()
        self._running = True
        await info(
            self,
            "Telemetry runtime запущен",
            component="runtime",
            plugins=len(self.plugin_manager.list_plugins()),
            groups=len(self.catalog),
        )

    async def stop(self) -> None:
        """
        Остановить runtime.

        Таймеры останавливаются, текущие сборы дорабатывают,
        буфер emitter дочищается.
        """
        if not self._running:
            return

        await self.poller.stop()
        await self.plugin_manager.stop_all()
        if isinstance(self.emitter, EventBusEmitter):
            await self.emitter.stop(timeout=float(self.config.shutdown_timeout))

        await info(self, "Telemetry runtime остановлен", component="runtime")
        for module in reversed(self._modules):
            await module.stop()

        self._running = False
        self._started_at = None

    async def _on_groups_changed(self) -> None:
        """
        Пересобрать каталог после изменения набора групп в Poller.

        Пока Poller запущен (плагин стартовал или остановился на работающем
        runtime), модули узнают о новом каталоге до первого сбора новых групп.
        """
        self.catalog = MetricCatalog(self.poller.groups())
        if not self.poller.is_running:
            return
        for module in self._modules:
            await module.on_catalog_changed()

    async def shutdown(self) -> None:
        """Полное завершение: остановка, выгрузка плагинов, очистка шины и сервисов."""
        await self.stop()
        for plugin_name in reversed(self.plugin_manager.list_plugins()):
            await self.plugin_manager.unload_plugin(plugin_name)
        self.event_bus.clear()
        await self.service_registry.clear()

    async def health_check(self) -> dict[str, Any]:
        """
        Состояние runtime для /health.

        status: "ok" - все группы собирались без сбоев целиком,
        "degraded" - хотя бы одна группа имела неудачный сбор.
        """
        groups = self.poller.stats()
        degraded = any(stats["failures"] for stats in groups.values())
        uptime = time.time() - self._started_at if self._started_at is not None else 0
        health: dict[str, Any] = {
            "status": "degraded" if degraded else "ok",
            "running": self._running,
            "uptime": uptime,
            "plugins": self.plugin_manager.list_plugins(),
            "groups": groups,
        }
        if isinstance(self.emitter, EventBusEmitter):
            health["emitter"] = {
                "published": self.emitter.published,
                "dropped": self.emitter.dropped,
            }
        return health
