import asyncio
import copy
from types import SimpleNamespace

import pytest

from telemetry_core.errors import CatalogError, Unsupported
from telemetry_core.metrics import CollectionResult, MetricDef, MetricGroup, OneShot, Periodic
from telemetry_core.poller import Poller
from telemetry_core.service_registry import ServiceRegistry
from telemetry_plugins.beam import events
from telemetry_plugins.beam.catalog import build_catalog
from telemetry_plugins.beam.stat_source import SnapshotStatSource
from tests.conftest import BEAM_SNAPSHOT, settle


def _counting_group(group_id, cadence, key=None, calls=None, gate=None, fail=None):
    key = key or f"{group_id}.count"
    calls = calls if calls is not None else []

    async def collect():
        calls.append(group_id)
        if gate is not None:
            await gate.wait()
        if fail is not None:
            raise fail
        result = CollectionResult()
        result.emit(key, {"count": len(calls)})
        return result

    return MetricGroup(group_id, cadence, [MetricDef(f"{group_id}.metric", key, "Test metric", "count")], collect)


@pytest.mark.asyncio
async def test_poll_rate_1000_over_5000ms_runs_five_cycles(beam_source, recording_emitter, fake_clock):
    poller = Poller(recording_emitter, clock=fake_clock)
    await poller.add_groups("beam", build_catalog(beam_source, poll_rate=1000).polling_groups())

    await poller.start()
    await fake_clock.advance(5.0)
    await poller.stop()

    assert len(recording_emitter.by_key(events.MEMORY)) == 5
    assert len(recording_emitter.by_key(events.REDUCTION_COUNT)) == 5
    stats = poller.stats()
    assert stats["beam_memory_polling_metrics"]["collections"] == 5
    assert stats["beam_internal_polling_metrics"]["collections"] == 5


@pytest.mark.asyncio
async def test_first_tick_fires_after_one_interval(recording_emitter, fake_clock):
    calls = []
    poller = Poller(recording_emitter, clock=fake_clock)
    await poller.add_groups("test", [_counting_group("g", Periodic(1000), calls=calls)])

    await poller.start()
    await fake_clock.advance(0.5)
    assert calls == []
    await fake_clock.advance(0.5)
    assert calls == ["g"]
    await poller.stop()


@pytest.mark.asyncio
async def test_manual_groups_run_once_before_timers(recording_emitter, fake_clock):
    calls = []
    poller = Poller(recording_emitter, clock=fake_clock)
    await poller.add_groups("test", [
        _counting_group("manual_a", OneShot(), calls=calls),
        _counting_group("manual_b", OneShot(), calls=calls),
        _counting_group("polling", Periodic(1000), calls=calls),
    ])

    await poller.start()
    assert sorted(calls) == ["manual_a", "manual_b"]

    await fake_clock.advance(3.0)
    assert calls.count("manual_a") == 1
    assert calls.count("manual_b") == 1
    assert calls.count("polling") == 3
    await poller.stop()

    stats = poller.stats()
    assert stats["manual_a"]["state"] == "collected"
    assert stats["polling"]["state"] == "idle"


@pytest.mark.asyncio
async def test_manual_groups_not_rerun_on_restart(recording_emitter, fake_clock):
    calls = []
    poller = Poller(recording_emitter, clock=fake_clock)
    await poller.add_groups("test", [_counting_group("manual", OneShot(), calls=calls)])

    await poller.start()
    await poller.stop()
    await poller.start()
    await poller.stop()

    assert calls == ["manual"]


@pytest.mark.asyncio
async def test_slow_collection_coalesces_ticks(recording_emitter, fake_clock):
    calls = []
    gate = asyncio.Event()
    poller = Poller(recording_emitter, clock=fake_clock)
    await poller.add_groups("test", [_counting_group("slow", Periodic(1000), calls=calls, gate=gate)])

    await poller.start()
    await fake_clock.advance(3.0)

    # первый сбор ещё висит: тики 2 и 3 пропущены, а не поставлены в очередь
    assert calls == ["slow"]
    assert poller.stats()["slow"]["coalesced"] == 2

    gate.set()
    await settle()
    await fake_clock.advance(1.0)
    assert calls == ["slow", "slow"]
    await poller.stop()

    assert len(recording_emitter.by_key("slow.count")) == 2


@pytest.mark.asyncio
async def test_groups_are_isolated(recording_emitter, fake_clock):
    poller = Poller(recording_emitter, clock=fake_clock)
    await poller.add_groups("test", [
        _counting_group("broken", Periodic(1000), fail=RuntimeError("boom")),
        _counting_group("unsupported", Periodic(1000), fail=Unsupported("no such fact", fact="x")),
        _counting_group("healthy", Periodic(1000)),
    ])

    await poller.start()
    await fake_clock.advance(3.0)
    await poller.stop()

    stats = poller.stats()
    assert stats["broken"]["failures"] == 3
    assert stats["unsupported"]["failures"] == 3
    assert stats["healthy"]["failures"] == 0
    assert len(recording_emitter.by_key("healthy.count")) == 3


@pytest.mark.asyncio
async def test_malformed_sample_is_dropped_by_poller(recording_emitter):
    async def collect():
        result = CollectionResult()
        result.emit("k", {"count": 1})
        result.emit("k", {"count": 2, "undeclared": 3})
        result.emit("k", {"count": "many"})
        return result

    group = MetricGroup("g", OneShot(), [MetricDef("m", "k", "Test", "count")], collect)
    poller = Poller(recording_emitter)

    assert await poller.collect_group(group) == 1
    assert recording_emitter.by_key("k") == [({"count": 1}, {})]
    assert poller.stats()["g"]["skipped_metrics"] == 2


@pytest.mark.asyncio
async def test_duplicate_group_id_rejected(recording_emitter):
    poller = Poller(recording_emitter)
    await poller.add_groups("a", [_counting_group("g", OneShot())])
    with pytest.raises(ValueError):
        await poller.add_groups("b", [_counting_group("g", OneShot(), key="other.count")])


@pytest.mark.asyncio
async def test_remove_groups_disarms_timers(recording_emitter, fake_clock):
    calls = []
    poller = Poller(recording_emitter, clock=fake_clock)
    await poller.add_groups("owner", [_counting_group("g", Periodic(1000), calls=calls)])

    await poller.start()
    await fake_clock.advance(1.0)
    await poller.remove_groups("owner")
    await fake_clock.advance(3.0)
    await poller.stop()

    assert calls == ["g"]
    assert poller.groups() == []


@pytest.mark.asyncio
async def test_groups_added_after_start_are_scheduled(recording_emitter, fake_clock):
    calls = []
    poller = Poller(recording_emitter, clock=fake_clock)
    await poller.start()

    await poller.add_groups("late", [
        _counting_group("manual", OneShot(), calls=calls),
        _counting_group("polling", Periodic(500), calls=calls),
    ])
    assert calls == ["manual"]

    await fake_clock.advance(1.0)
    await poller.stop()
    assert calls.count("polling") == 2


@pytest.mark.asyncio
async def test_stop_waits_for_inflight_collection(recording_emitter, fake_clock):
    gate = asyncio.Event()
    poller = Poller(recording_emitter, clock=fake_clock)
    await poller.add_groups("test", [_counting_group("slow", Periodic(1000), gate=gate)])

    await poller.start()
    await fake_clock.advance(1.0)

    stop_task = asyncio.create_task(poller.stop())
    await settle()
    assert not stop_task.done()

    gate.set()
    await stop_task
    assert len(recording_emitter.by_key("slow.count")) == 1


@pytest.mark.asyncio
async def test_collection_errors_logged_with_level_and_context(recording_emitter, fake_clock):
    records = []

    async def record(level, message, **context):
        records.append({"level": level, "message": message, **context})

    runtime = SimpleNamespace(service_registry=ServiceRegistry())
    await runtime.service_registry.register("logger.log", record)

    snapshot = copy.deepcopy(BEAM_SNAPSHOT)
    snapshot["scheduling_counters"]["run_queue_all"] = 0  # all < normal
    snapshot["feature_flags"]["version"] = "R16B"
    del snapshot["feature_flags"]["time_correction"]
    catalog = build_catalog(SnapshotStatSource(snapshot), poll_rate=1000)
    poller = Poller(recording_emitter, clock=fake_clock, runtime=runtime)

    await poller.collect_group(catalog.get("beam_internal_polling_metrics"))
    await poller.collect_group(catalog.get("beam_system_info_manual_metrics"))

    errors = [r for r in records if "error" in r]
    assert len(errors) == 3
    by_error = {r["error"]: r for r in errors}

    inconsistent = by_error["Inconsistent"]
    assert inconsistent["level"] == "error"
    assert inconsistent["metric"] == events.RUN_QUEUE_COUNT
    assert inconsistent["group"] == "beam_internal_polling_metrics"
    assert inconsistent["component"] == "poller"

    assert by_error["Malformed"]["level"] == "warning"
    assert by_error["Malformed"]["metric"] == "version"

    unsupported = by_error["Unsupported"]
    assert unsupported["level"] == "warning"
    assert unsupported["fact"] == "feature_flags"
    assert unsupported["metric"] == events.TIME_CORRECTION_SUPPORT

    # dirty run_queue не публикуется, normal - публикуется
    run_queue = recording_emitter.by_key(events.RUN_QUEUE_COUNT)
    assert [tags for _, tags in run_queue] == [{"type": "normal"}]


@pytest.mark.asyncio
async def test_add_groups_rejects_whole_batch_on_duplicate(recording_emitter, fake_clock):
    poller = Poller(recording_emitter, clock=fake_clock)
    await poller.add_groups("first", [_counting_group("a", Periodic(1000))])

    with pytest.raises(ValueError):
        await poller.add_groups("second", [
            _counting_group("b", Periodic(1000)),
            _counting_group("a", OneShot()),
        ])
    with pytest.raises(ValueError):
        await poller.add_groups("second", [
            _counting_group("c", Periodic(1000)),
            _counting_group("c", Periodic(1000)),
        ])

    assert [g.id for g in poller.groups()] == ["a"]
    await poller.remove_groups("first")
    assert poller.groups() == []


@pytest.mark.asyncio
async def test_add_groups_rolled_back_when_change_hook_fails(recording_emitter, fake_clock):
    seen = []

    async def on_groups_changed():
        ids = [g.id for g in poller.groups()]
        seen.append(ids)
        if "bad" in ids:
            raise CatalogError("ключ публикации занят")

    poller = Poller(recording_emitter, clock=fake_clock, on_groups_changed=on_groups_changed)
    await poller.add_groups("ok", [_counting_group("good", Periodic(1000))])
    with pytest.raises(CatalogError):
        await poller.add_groups("broken", [_counting_group("bad", OneShot())])

    assert [g.id for g in poller.groups()] == ["good"]
    assert seen == [["good"], ["good", "bad"]]
