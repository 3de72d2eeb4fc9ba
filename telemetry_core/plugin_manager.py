"""
PluginManager - управление lifecycle плагинов метрик.

Загружает, запускает, останавливает плагины и передаёт их группы метрик
в Poller.

ПРАВИЛА:
- Автозагрузка плагинов - ТОЛЬКО через manifest (plugin.json или manifest.json)
- Зависимости разрешаются через топологическую сортировку
- Группы плагина регистрируются в Poller после on_start() и снимаются до on_stop()
"""

import importlib
import json
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

from telemetry_core.logger_helper import info, warning
from telemetry_plugins.base_plugin import BasePlugin

if TYPE_CHECKING:
    from telemetry_core.runtime import TelemetryRuntime


class PluginState(Enum):
    """Состояния плагина."""
    UNLOADED = "unloaded"
    LOADED = "loaded"
    STARTED = "started"
    STOPPED = "stopped"
    ERROR = "error"


class PluginManager:
    """
    Менеджер для управления lifecycle плагинов.

    Отвечает за:
    - загрузку плагинов (в том числе из манифестов)
    - запуск и регистрацию групп метрик в Poller
    - остановку плагинов
    - отслеживание состояния
    """

    def __init__(self, runtime: Optional["TelemetryRuntime"] = None):
        # runtime может быть не установлен (тесты создают PluginManager() без runtime)
        self._runtime = runtime
        # Словарь: plugin_name -> plugin_instance
        self._plugins: dict[str, BasePlugin] = {}
        # Словарь: plugin_name -> state
        self._states: dict[str, PluginState] = {}

    async def load_plugin(self, plugin: BasePlugin) -> None:
        """
        Загрузить плагин.

        Raises:
            ValueError: если плагин уже загружен или не загружены его зависимости
        """
        plugin_name = plugin.metadata.name
        try:
            plugin.runtime = self._runtime

            if plugin_name in self._plugins:
                raise ValueError(f"Плагин '{plugin_name}' уже загружен")

            for dep_name in plugin.metadata.dependencies or []:
                if dep_name not in self._plugins:
                    raise ValueError(
                        f"Плагин '{plugin_name}' требует плагин '{dep_name}', но он не загружен"
                    )

            await plugin.on_load()
            self._plugins[plugin_name] = plugin
            self._states[plugin_name] = PluginState.LOADED
        except Exception:
            # Не затираем состояние уже загруженного экземпляра с тем же именем
            if plugin_name not in self._plugins:
                self._states[plugin_name] = PluginState.ERROR
            raise

    async def start_plugin(self, plugin_name: str) -> None:
        """
        Запустить плагин и зарегистрировать его группы метрик.

        Raises:
            ValueError: если плагин не найден
            RuntimeError: если on_start() или discovery групп завершились ошибкой
        """
        plugin = self._plugins.get(plugin_name)
        if plugin is None:
            raise ValueError(f"Плагин '{plugin_name}' не найден")

        if self._states[plugin_name] == PluginState.STARTED:
            return  # Уже запущен

        try:
            await plugin.on_start()
            options = self._plugin_options(plugin)
            groups = list(plugin.polling_metrics(options)) + list(plugin.manual_metrics(options))
            if self._runtime is not None and groups:
                await self._runtime.poller.add_groups(plugin_name, groups)
            self._states[plugin_name] = PluginState.STARTED
        except Exception as e:
            self._states[plugin_name] = PluginState.ERROR
            raise RuntimeError(f"Ошибка запуска плагина '{plugin_name}': {e}") from e

        await info(
            self._runtime,
            f"Плагин '{plugin_name}' запущен",
            component="plugin_manager",
            groups=len(groups),
        )

    async def stop_plugin(self, plugin_name: str) -> None:
        """
        Снять группы плагина с Poller и остановить плагин.

        Raises:
            ValueError: если плагин не найден
        """
        plugin = self._plugins.get(plugin_name)
        if plugin is None:
            raise ValueError(f"Плагин '{plugin_name}' не найден")

        if self._states[plugin_name] != PluginState.STARTED:
            return  # Не запущен

        try:
            if self._runtime is not None:
                await self._runtime.poller.remove_groups(plugin_name)
            await plugin.on_stop()
            self._states[plugin_name] = PluginState.STOPPED
        except Exception as e:
            self._states[plugin_name] = PluginState.ERROR
            raise RuntimeError(f"Ошибка остановки плагина '{plugin_name}': {e}") from e

    async def unload_plugin(self, plugin_name: str) -> None:
        """
        Выгрузить плагин (предварительно остановив).

        Raises:
            ValueError: если плагин не найден
        """
        plugin = self._plugins.get(plugin_name)
        if plugin is None:
            raise ValueError(f"Плагин '{plugin_name}' не найден")

        if self._states[plugin_name] == PluginState.STARTED:
            await self.stop_plugin(plugin_name)

        try:
            await plugin.on_unload()
            del self._plugins[plugin_name]
            self._states[plugin_name] = PluginState.UNLOADED
        except Exception as e:
            self._states[plugin_name] = PluginState.ERROR
            raise RuntimeError(f"Ошибка выгрузки плагина '{plugin_name}': {e}") from e

    def get_plugin(self, plugin_name: str) -> Optional[BasePlugin]:
        return self._plugins.get(plugin_name)

    def get_plugin_state(self, plugin_name: str) -> Optional[PluginState]:
        return self._states.get(plugin_name)

    def list_plugins(self) -> list[str]:
        """Имена загруженных плагинов в порядке загрузки."""
        return list(self._plugins.keys())

    async def start_all(self) -> None:
        """Запустить все загруженные плагины."""
        for plugin_name in list(self._plugins.keys()):
            if self._states[plugin_name] in (PluginState.LOADED, PluginState.STOPPED):
                await self.start_plugin(plugin_name)

    async def stop_all(self) -> None:
        """Остановить все запущенные плагины (в обратном порядке загрузки)."""
        for plugin_name in reversed(list(self._plugins.keys())):
            if self._states[plugin_name] == PluginState.STARTED:
                try:
                    await self.stop_plugin(plugin_name)
                except RuntimeError as e:
                    # Ошибка одного плагина не мешает остановке остальных
                    await warning(self._runtime, str(e), component="plugin_manager")

    def _plugin_options(self, plugin: BasePlugin) -> dict[str, Any]:
        """Опции discovery: poll_rate из конфигурации runtime, поверх - опции плагина."""
        options: dict[str, Any] = {}
        config = getattr(self._runtime, "config", None)
        if config is not None:
            options["poll_rate"] = config.poll_rate_ms
        options.update(plugin.options)
        return options

    def _load_plugin_manifest(self, plugin_dir: Path) -> Optional[Dict[str, Any]]:
        """
        Загрузить манифест плагина из plugin.json или manifest.json.

        Returns:
            Словарь с данными манифеста или None если манифест не найден/битый
        """
        for manifest_file in ("plugin.json", "manifest.json"):
            manifest_path = plugin_dir / manifest_file
            if manifest_path.is_file():
                try:
                    with open(manifest_path, "r", encoding="utf-8") as f:
                        data = json.load(f)
                except (json.JSONDecodeError, OSError):
                    continue
                if isinstance(data, dict):
                    return data
        return None

    async def _load_plugin_from_manifest(
        self,
        manifest: Dict[str, Any],
        logger_func: Callable[..., Awaitable[None]],
    ) -> bool:
        """
        Загрузить плагин по данным манифеста.

        Returns:
            True если плагин успешно загружен, False иначе
        """
        class_path = manifest.get("class_path")
        plugin_name = manifest.get("name", "unknown")

        if not class_path or "." not in class_path:
            await logger_func(
                self._runtime,
                f"Манифест плагина '{plugin_name}' не содержит корректный 'class_path'",
                component="plugin_manager",
            )
            return False

        module_path, class_name = class_path.rsplit(".", 1)
        try:
            module = importlib.import_module(module_path)
            plugin_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            await logger_func(
                self._runtime,
                f"Не удалось импортировать класс '{class_path}' плагина '{plugin_name}': {e}",
                component="plugin_manager",
            )
            return False

        if not isinstance(plugin_class, type) or not issubclass(plugin_class, BasePlugin):
            await logger_func(
                self._runtime,
                f"Класс '{class_path}' плагина '{plugin_name}' не является подклассом BasePlugin",
                component="plugin_manager",
            )
            return False

        options = manifest.get("options", {})
        try:
            plugin_instance = plugin_class(self._runtime, options=options if isinstance(options, dict) else {})
            await self.load_plugin(plugin_instance)
        except Exception as e:
            await logger_func(
                self._runtime,
                f"Не удалось загрузить плагин '{plugin_name}' из манифеста: {e}",
                component="plugin_manager",
            )
            return False

        await info(
            self._runtime,
            f"Плагин '{plugin_name}' загружен из манифеста",
            component="plugin_manager",
        )
        return True

    def _topological_sort_manifests(self, manifests: Dict[str, Dict[str, Any]]) -> List[str]:
        """
        Топологическая сортировка плагинов по зависимостям (Kahn's algorithm).

        Плагины из циклов в результат не попадают.
        """
        graph: Dict[str, List[str]] = {}
        for plugin_name, manifest in manifests.items():
            deps = manifest.get("dependencies", [])
            graph[plugin_name] = [d for d in deps if d in manifests] if isinstance(deps, list) else []

        in_degree: Dict[str, int] = {name: len(deps) for name, deps in graph.items()}
        queue: List[str] = sorted(name for name, degree in in_degree.items() if degree == 0)
        result: List[str] = []

        while queue:
            plugin_name = queue.pop(0)
            result.append(plugin_name)
            for other_name, deps in graph.items():
                if plugin_name in deps:
                    in_degree[other_name] -= 1
                    if in_degree[other_name] == 0:
                        queue.append(other_name)

        return result

    async def auto_load_plugins(
        self,
        plugins_dir: Optional[Path] = None,
        logger_func: Optional[Callable[..., Awaitable[None]]] = None,
    ) -> None:
        """
        Загрузить плагины из подкаталогов plugins_dir по манифестам.

        - каталог без манифеста пропускается
        - манифест с "_disabled": true пропускается
        - плагины загружаются в порядке зависимостей
        - ошибки отдельных плагинов логируются и не прерывают загрузку

        Args:
            plugins_dir: каталог с плагинами (по умолчанию пакет telemetry_plugins)
            logger_func: функция для логирования ошибок (по умолчанию warning)
        """
        if plugins_dir is None:
            plugins_dir = Path(__file__).parent.parent / "telemetry_plugins"

        if not plugins_dir.is_dir():
            return

        actual_logger_func = logger_func if logger_func is not None else warning

        manifests: Dict[str, Dict[str, Any]] = {}
        for item in sorted(plugins_dir.iterdir()):
            if not item.is_dir():
                continue
            manifest = self._load_plugin_manifest(item)
            if not manifest or manifest.get("_disabled", False):
                continue
            plugin_name = manifest.get("name")
            if plugin_name and plugin_name not in self._plugins:
                manifests[plugin_name] = manifest

        load_order = self._topological_sort_manifests(manifests)
        skipped = [name for name in manifests if name not in load_order]
        if skipped:
            await actual_logger_func(
                self._runtime,
                f"Циклические зависимости между плагинами: {skipped}",
                component="plugin_manager",
            )

        for plugin_name in load_order:
            manifest = manifests[plugin_name]
            missing = [dep for dep in manifest.get("dependencies", []) if dep not in self._plugins]
            if missing:
                await actual_logger_func(
                    self._runtime,
                    f"Пропущен плагин '{plugin_name}': отсутствуют зависимости {missing}",
                    component="plugin_manager",
                )
                continue
            await self._load_plugin_from_manifest(manifest, actual_logger_func)
