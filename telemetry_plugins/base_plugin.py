"""
Базовый класс и интерфейс для плагинов метрик.

Все плагины должны наследоваться от BasePlugin.

Плагин поставляет только декларативные данные - группы метрик с процедурами
сбора. Таймеры и вызов процедур выполняет Poller runtime.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from telemetry_core.metrics import MetricGroup
    from telemetry_core.runtime import TelemetryRuntime


@dataclass
class PluginMetadata:
    """Метаданные плагина."""

    name: str
    version: str
    description: str = ""
    author: str = ""
    dependencies: list[str] = field(default_factory=list)  # Список имён плагинов-зависимостей


class BasePlugin(ABC):
    """
    Базовый класс для всех плагинов.

    Lifecycle методы вызываются в следующем порядке:
    1. __init__() - конструктор
    2. on_load() - загрузка плагина
    3. on_start() - запуск плагина (после него PluginManager передаёт группы в Poller)
    4. on_stop() - остановка плагина (перед ним группы снимаются с Poller)
    5. on_unload() - выгрузка плагина

    Discovery:
    - polling_metrics(options) - периодические группы
    - manual_metrics(options) - группы, собираемые один раз
    """

    _runtime: Optional["TelemetryRuntime"] = None

    @property
    def runtime(self) -> "TelemetryRuntime":
        # Contract: runtime гарантирован менеджером плагинов при вызове lifecycle-методов
        assert self._runtime is not None
        return self._runtime

    @runtime.setter
    def runtime(self, value: Optional["TelemetryRuntime"]) -> None:
        self._runtime = value

    def __init__(self, runtime: Optional["TelemetryRuntime"] = None, options: Optional[dict[str, Any]] = None) -> None:
        """
        Args:
            runtime: экземпляр TelemetryRuntime (PluginManager устанавливает его перед on_load)
            options: опции плагина (из manifest или переданные явно)
        """
        self._runtime = runtime
        self.options: dict[str, Any] = dict(options or {})
        self._loaded = False
        self._started = False

    def get_env_config(self, key: str, default: Optional[str] = None, prefix: Optional[str] = None) -> Optional[str]:
        """
        Получить значение конфигурации из переменных окружения.

        Ищет переменную в следующем порядке:
        1. {prefix}_{key} (prefix по умолчанию - имя плагина из metadata)
        2. {key}

        Пример:
            # Ищет BEAM_POLL_RATE, затем POLL_RATE
            rate = self.get_env_config("POLL_RATE")
        """
        if prefix is None:
            prefix = self.metadata.name.upper().replace("-", "_")

        for env_key in (f"{prefix}_{key}", key):
            value = os.getenv(env_key)
            if value is not None:
                return value
        return default

    def get_env_config_int(self, key: str, default: Optional[int] = None, prefix: Optional[str] = None) -> Optional[int]:
        """Целое число из переменных окружения или default, если не удалось распарсить."""
        value = self.get_env_config(key, default=None, prefix=prefix)
        if value is None:
            return default
        try:
            return int(value)
        except (ValueError, TypeError):
            return default

    @property
    @abstractmethod
    def metadata(self) -> PluginMetadata:
        """Метаданные плагина. Должен быть реализован в каждом плагине."""

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def is_started(self) -> bool:
        return self._started

    def polling_metrics(self, options: dict[str, Any]) -> list["MetricGroup"]:
        """Периодические группы метрик плагина. По умолчанию - нет."""
        return []

    def manual_metrics(self, options: dict[str, Any]) -> list["MetricGroup"]:
        """Группы метрик, собираемые один раз при старте. По умолчанию - нет."""
        return []

    async def on_load(self) -> None:
        """
        Вызывается при загрузке плагина.

        Здесь можно инициализировать ресурсы и подписываться на события.
        """
        self._loaded = True

    async def on_start(self) -> None:
        """Вызывается при запуске плагина (открыть соединения и т.п.)."""
        self._started = True

    async def on_stop(self) -> None:
        """Вызывается при остановке плагина (закрыть соединения)."""
        self._started = False

    async def on_unload(self) -> None:
        """Вызывается при выгрузке плагина (отписаться от событий)."""
        self._loaded = False
