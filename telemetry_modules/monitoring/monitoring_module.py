from typing import Any, Optional
import time

from prometheus_client import CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client import Counter, Gauge
from fastapi import APIRouter, Response

from telemetry_core.metrics import MetricDef
from telemetry_core.runtime_module import RuntimeModule


def prometheus_name(metric_name: str, prefix: str = "") -> str:
    """`beam.memory.allocated.bytes` -> `<prefix>_beam_memory_allocated_bytes`."""
    name = metric_name.replace(".", "_")
    return f"{prefix}_{name}" if prefix else name


class MonitoringModule(RuntimeModule):
    """Prometheus exporter for samples published on the event bus.

    One gauge per MetricDef (last value semantics). Gauges are built from
    `runtime.catalog` on start, so the catalog must already hold every group.
    Usage: register `router` with your FastAPI app.
    """

    def __init__(self, runtime: Any = None):
        super().__init__(runtime)
        self.registry = CollectorRegistry()
        self._start_time = time.time()
        self._gauges: dict[str, Gauge] = {}
        self._subscribed: list[str] = []

        self.samples_received_total = Counter(
            "telemetry_samples_received_total",
            "Total metric samples received from the event bus",
            ["publication_key"],
            registry=self.registry,
        )
        self.uptime = Gauge("telemetry_uptime_seconds", "Exporter uptime seconds", registry=self.registry)

        self.router = APIRouter()
        self.router.add_api_route("/metrics", self.metrics_endpoint, methods=["GET"])
        self.router.add_api_route("/health", self.health_endpoint, methods=["GET"])

    @property
    def name(self) -> str:
        return "monitoring"

    def gauge_for(self, metric_name: str) -> Optional[Gauge]:
        return self._gauges.get(metric_name)

    async def start(self) -> None:
        self._start_time = time.time()
        self._sync_catalog()

    async def on_catalog_changed(self) -> None:
        self._sync_catalog()

    def _sync_catalog(self) -> None:
        """Bring gauges and subscriptions in line with `runtime.catalog`."""
        prefix = getattr(self.runtime.config, "metrics_prefix", "")
        catalog = self.runtime.catalog

        names = set()
        for metric in catalog.metrics():
            names.add(metric.name)
            if metric.name in self._gauges:
                continue
            self._gauges[metric.name] = Gauge(
                prometheus_name(metric.name, prefix),
                metric.description,
                sorted(metric.tags),
                registry=self.registry,
            )
        # metrics of a stopped plugin leave the exposition
        for name in [n for n in self._gauges if n not in names]:
            self.registry.unregister(self._gauges.pop(name))

        keys = catalog.publication_keys()
        for key in keys:
            if key in self._subscribed:
                continue
            self.runtime.event_bus.subscribe(key, self._on_sample)
            self._subscribed.append(key)
        for key in [k for k in self._subscribed if k not in keys]:
            self.runtime.event_bus.unsubscribe(key, self._on_sample)
            self._subscribed.remove(key)

    async def stop(self) -> None:
        for key in self._subscribed:
            self.runtime.event_bus.unsubscribe(key, self._on_sample)
        self._subscribed.clear()

    async def _on_sample(self, publication_key: str, data: dict) -> None:
        measurements = data.get("measurements", {})
        tags = data.get("tags", {})
        for metric in self.runtime.catalog.metrics_for(publication_key):
            if metric.value_field not in measurements:
                continue
            self._set(metric, measurements[metric.value_field], tags)
        self.samples_received_total.labels(publication_key).inc()

    def _set(self, metric: MetricDef, value: Any, tags: dict) -> None:
        gauge = self._gauges.get(metric.name)
        if gauge is None:
            return
        if metric.tags:
            gauge = gauge.labels(*[str(tags.get(tag, "")) for tag in sorted(metric.tags)])
        gauge.set(value)

    async def metrics_endpoint(self) -> Response:
        self.uptime.set(time.time() - self._start_time)
        data = generate_latest(self.registry)
        return Response(content=data, media_type=CONTENT_TYPE_LATEST)

    async def health_endpoint(self) -> dict:
        if self.runtime is None:
            return {"status": "ok", "uptime": time.time() - self._start_time}
        return await self.runtime.health_check()
