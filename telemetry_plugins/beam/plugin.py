"""
BeamPlugin - метрики BEAM (Erlang VM).

Поставляет группы метрик: память, внутренние счётчики VM, топология CPU,
системные лимиты, флаги сборки и информация о планировщиках.

Опции:
- poll_rate: период polling групп в мс (по умолчанию 5000);
  переопределяется переменной окружения BEAM_POLL_RATE

Источник фактов выбирается по config.stat_source:
- snapshot: снимки приходят событием beam.introspection на EventBus
- http: HttpStatSource поверх config.stat_source_url
"""

from typing import TYPE_CHECKING, Any, Optional

from telemetry_core.logger_helper import info
from telemetry_core.metrics import MetricGroup

from telemetry_plugins.base_plugin import BasePlugin, PluginMetadata
from telemetry_plugins.beam import catalog
from telemetry_plugins.beam.events import INTROSPECTION_EVENT
from telemetry_plugins.beam.stat_source import HttpStatSource, SnapshotStatSource, StatSource

if TYPE_CHECKING:
    from telemetry_core.runtime import TelemetryRuntime


class BeamPlugin(BasePlugin):
    """Плагин метрик BEAM."""

    def __init__(
        self,
        runtime: Optional["TelemetryRuntime"] = None,
        options: Optional[dict[str, Any]] = None,
        source: Optional[StatSource] = None,
    ):
        super().__init__(runtime, options=options)
        self.source = source
        self._subscribed = False

    @property
    def metadata(self) -> PluginMetadata:
        return PluginMetadata(
            name="beam",
            version="0.1.0",
            description="Метрики Erlang VM: память, планировщики, лимиты, флаги сборки",
            author="beam-telemetry",
        )

    def _create_source(self) -> StatSource:
        config = getattr(self.runtime, "config", None)
        if config is not None and config.stat_source == "http":
            return HttpStatSource(config.stat_source_url, timeout=config.stat_source_timeout)
        return SnapshotStatSource()

    def _poll_rate(self, options: dict[str, Any]) -> int:
        poll_rate = options.get("poll_rate", catalog.DEFAULT_POLL_RATE)
        if isinstance(poll_rate, bool) or not isinstance(poll_rate, int) or poll_rate <= 0:
            raise ValueError(f"poll_rate must be positive integer (ms), got: {poll_rate!r}")
        return poll_rate

    def polling_metrics(self, options: dict[str, Any]) -> list[MetricGroup]:
        return catalog.polling_groups(self._require_source(), self._poll_rate(options))

    def manual_metrics(self, options: dict[str, Any]) -> list[MetricGroup]:
        return catalog.manual_groups(self._require_source())

    def _require_source(self) -> StatSource:
        if self.source is None:
            raise RuntimeError("StatSource не создан: плагин не загружен")
        return self.source

    async def on_load(self) -> None:
        await super().on_load()

        env_rate = self.get_env_config_int("POLL_RATE")
        if env_rate is not None:
            self.options["poll_rate"] = env_rate

        if self.source is None:
            self.source = self._create_source()

        if isinstance(self.source, SnapshotStatSource):
            self.runtime.event_bus.subscribe(INTROSPECTION_EVENT, self.source.handle_event)
            self._subscribed = True

    async def on_start(self) -> None:
        await super().on_start()
        await self._require_source().open()
        await info(
            self.runtime,
            f"BEAM источник фактов: {type(self.source).__name__}",
            plugin=self.metadata.name,
        )

    async def on_stop(self) -> None:
        await super().on_stop()
        if self.source is not None:
            await self.source.close()

    async def on_unload(self) -> None:
        await super().on_unload()
        if self._subscribed and isinstance(self.source, SnapshotStatSource):
            self.runtime.event_bus.unsubscribe(INTROSPECTION_EVENT, self.source.handle_event)
            self._subscribed = False
