from types import SimpleNamespace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from telemetry_core.config import Config
from telemetry_core.event_bus import EventBus
from telemetry_core.metrics import MetricCatalog
from telemetry_modules.monitoring import MonitoringModule, prometheus_name
from telemetry_plugins.beam import events
from telemetry_plugins.beam.catalog import build_catalog


def _runtime(catalog, prefix=""):
    return SimpleNamespace(event_bus=EventBus(), catalog=catalog, config=Config(metrics_prefix=prefix))


def test_prometheus_name():
    assert prometheus_name("beam.memory.allocated.bytes") == "beam_memory_allocated_bytes"
    assert prometheus_name("beam.stats.gc.count", "my_app") == "my_app_beam_stats_gc_count"


@pytest.mark.asyncio
async def test_gauges_created_for_catalog(beam_source):
    runtime = _runtime(build_catalog(beam_source))
    mod = MonitoringModule(runtime)
    await mod.start()

    assert mod.gauge_for("beam.memory.allocated.bytes") is not None
    assert mod.gauge_for("beam.stats.active_task.count") is not None
    assert runtime.event_bus.get_subscribers_count(events.MEMORY) == 1

    await mod.stop()
    assert runtime.event_bus.get_subscribers_count(events.MEMORY) == 0


@pytest.mark.asyncio
async def test_samples_update_gauges(beam_source):
    runtime = _runtime(build_catalog(beam_source), prefix="app")
    mod = MonitoringModule(runtime)
    await mod.start()

    await runtime.event_bus.publish(events.MEMORY, {
        "measurements": {"total": 1000, "atom": 100, "binary": 50, "code": 200, "ets": 30, "processes": 400},
        "tags": {},
        "timestamp": 0.0,
    })
    await runtime.event_bus.publish(events.ACTIVE_TASK_COUNT, {
        "measurements": {"count": 2}, "tags": {"type": "dirty"}, "timestamp": 0.0,
    })

    assert mod.registry.get_sample_value("app_beam_memory_allocated_bytes") == 1000
    assert mod.registry.get_sample_value("app_beam_memory_processes_total_bytes") == 400
    assert mod.registry.get_sample_value("app_beam_stats_active_task_count", {"type": "dirty"}) == 2
    assert mod.registry.get_sample_value(
        "telemetry_samples_received_total", {"publication_key": events.MEMORY}
    ) == 1
    await mod.stop()


@pytest.mark.asyncio
async def test_metrics_endpoint(beam_source):
    runtime = _runtime(build_catalog(beam_source))
    mod = MonitoringModule(runtime)
    await mod.start()
    await runtime.event_bus.publish(events.ATOM_LIMIT, {
        "measurements": {"limit": 1000}, "tags": {}, "timestamp": 0.0,
    })

    app = FastAPI()
    app.include_router(mod.router)
    client = TestClient(app)
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "beam_system_atom_limit_info 1000.0" in response.text
    assert "# HELP beam_system_atom_limit_info The maximum number of atoms allowed." in response.text
    assert "telemetry_uptime_seconds" in response.text
    await mod.stop()


def test_health_endpoint_without_runtime():
    mod = MonitoringModule()
    app = FastAPI()
    app.include_router(mod.router)

    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_catalog_change_syncs_gauges_and_subscriptions(beam_source):
    catalog = build_catalog(beam_source)
    runtime = _runtime(MetricCatalog([]))
    mod = MonitoringModule(runtime)
    await mod.start()
    assert mod.gauge_for("beam.system.atom_limit.info") is None

    runtime.catalog = catalog
    await mod.on_catalog_changed()
    assert mod.gauge_for("beam.system.atom_limit.info") is not None
    assert runtime.event_bus.get_subscribers_count(events.ATOM_LIMIT) == 1

    await runtime.event_bus.publish(events.ATOM_LIMIT, {"measurements": {"limit": 1000}, "tags": {}, "timestamp": 0.0})
    assert mod.registry.get_sample_value("beam_system_atom_limit_info") == 1000

    runtime.catalog = MetricCatalog([g for g in catalog.groups() if g.id != "beam_system_limits_manual_metrics"])
    await mod.on_catalog_changed()
    assert mod.gauge_for("beam.system.atom_limit.info") is None
    assert mod.registry.get_sample_value("beam_system_atom_limit_info") is None
    assert runtime.event_bus.get_subscribers_count(events.ATOM_LIMIT) == 0
    assert runtime.event_bus.get_subscribers_count(events.MEMORY) == 1
    await mod.stop()
