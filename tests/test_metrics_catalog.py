import pytest

from telemetry_core.errors import CatalogError, Malformed
from telemetry_core.metrics import (
    CollectionResult,
    MetricCatalog,
    MetricDef,
    MetricGroup,
    OneShot,
    Periodic,
    Sample,
    Unit,
)
from telemetry_plugins.beam import events
from telemetry_plugins.beam.catalog import build_catalog, DEFAULT_POLL_RATE


async def _noop():
    return CollectionResult()


def _group(group_id="g", cadence=None, metrics=None):
    metrics = metrics if metrics is not None else [MetricDef("m.one", "k.one", "One", "count")]
    return MetricGroup(group_id, cadence or Periodic(1000), metrics, _noop)


def test_metric_def_requires_non_empty_fields():
    with pytest.raises(CatalogError):
        MetricDef("", "k", "d", "count")
    with pytest.raises(CatalogError):
        MetricDef("m", "k", "d", "")


def test_metric_def_tags_normalized_to_frozenset():
    metric = MetricDef("m", "k", "d", "count", tags=["type"])
    assert metric.tags == frozenset({"type"})


def test_group_must_not_be_empty():
    with pytest.raises(CatalogError):
        _group(metrics=[])


@pytest.mark.parametrize("interval", [0, -5, 1.5, True])
def test_periodic_interval_must_be_positive_int(interval):
    with pytest.raises(CatalogError):
        _group(cadence=Periodic(interval))


def test_group_requires_callable_collect():
    with pytest.raises(CatalogError):
        MetricGroup("g", OneShot(), [MetricDef("m", "k", "d", "count")], None)


def test_shared_key_must_declare_same_tags():
    with pytest.raises(CatalogError):
        _group(metrics=[
            MetricDef("m.a", "k", "A", "a", tags={"type"}),
            MetricDef("m.b", "k", "B", "b"),
        ])


def test_catalog_rejects_duplicate_group_id():
    with pytest.raises(CatalogError):
        MetricCatalog([_group("g"), _group("g", metrics=[MetricDef("m.two", "k.two", "Two", "count")])])


def test_catalog_rejects_duplicate_metric_name():
    with pytest.raises(CatalogError):
        MetricCatalog([
            _group("a"),
            _group("b", metrics=[MetricDef("m.one", "k.other", "One again", "count")]),
        ])


def test_catalog_rejects_key_shared_between_groups():
    with pytest.raises(CatalogError):
        MetricCatalog([
            _group("a"),
            _group("b", metrics=[MetricDef("m.two", "k.one", "Two", "count")]),
        ])


def test_catalog_error_is_value_error():
    assert issubclass(CatalogError, ValueError)


def test_check_sample_accepts_declared_shape():
    group = _group(metrics=[MetricDef("m", "k", "d", "count", tags={"type"})])
    group.check_sample(Sample("k", {"count": 3}, {"type": "normal"}))


@pytest.mark.parametrize("sample", [
    Sample("unknown", {"count": 1}, {"type": "normal"}),
    Sample("k", {"count": 1, "extra": 2}, {"type": "normal"}),
    Sample("k", {}, {"type": "normal"}),
    Sample("k", {"count": "1"}, {"type": "normal"}),
    Sample("k", {"count": True}, {"type": "normal"}),
    Sample("k", {"count": 1}, {}),
    Sample("k", {"count": 1}, {"type": "normal", "node": "a"}),
])
def test_check_sample_rejects_undeclared_shape(sample):
    group = _group(metrics=[MetricDef("m", "k", "d", "count", tags={"type"})])
    with pytest.raises(Malformed):
        group.check_sample(sample)


def test_beam_catalog_groups_and_cadence(beam_source):
    catalog = build_catalog(beam_source)

    assert [g.id for g in catalog.polling_groups()] == [
        "beam_memory_polling_metrics",
        "beam_internal_polling_metrics",
    ]
    assert sorted(g.id for g in catalog.manual_groups()) == [
        "beam_cpu_topology_manual_metrics",
        "beam_scheduler_manual_metrics",
        "beam_system_info_manual_metrics",
        "beam_system_limits_manual_metrics",
    ]
    assert all(g.interval_ms == DEFAULT_POLL_RATE for g in catalog.polling_groups())
    assert all(g.interval_ms is None for g in catalog.manual_groups())


def test_beam_catalog_poll_rate_applies_to_all_polling_groups(beam_source):
    catalog = build_catalog(beam_source, poll_rate=1000)
    assert {g.interval_ms for g in catalog.polling_groups()} == {1000}


def test_beam_catalog_rejects_bad_poll_rate(beam_source):
    with pytest.raises(CatalogError):
        build_catalog(beam_source, poll_rate=0)


def test_beam_memory_metrics_share_one_key(beam_source):
    catalog = build_catalog(beam_source)
    memory = catalog.metrics_for(events.MEMORY)

    assert [m.value_field for m in memory] == ["total", "atom", "binary", "code", "ets", "processes"]
    assert all(m.unit is Unit.BYTE for m in memory)
    assert all(not m.tags for m in memory)


def test_beam_tagged_metrics(beam_source):
    catalog = build_catalog(beam_source)
    tagged = {m.name for m in catalog.metrics() if m.tags}
    assert tagged == {
        "beam.stats.active_task.count",
        "beam.stats.run_queue.count",
        "beam.stats.port_io.byte.count",
    }


def test_beam_catalog_descriptions_and_units(beam_source):
    catalog = build_catalog(beam_source)
    by_name = {m.name: m for m in catalog.metrics()}

    assert len(by_name) == 36
    assert by_name["beam.system.atom_limit.info"].description == "The maximum number of atoms allowed."
    assert by_name["beam.stats.uptime.milliseconds.count"].unit is Unit.MILLISECOND
    assert by_name["beam.system.version.info"].value_field == "version"
    assert by_name["beam.system.thread_pool_size.info"].value_field == "size"
    assert by_name["beam.system.smp_support.info"].value_field == "enabled"
