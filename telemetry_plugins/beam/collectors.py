"""
Процедуры сбора BEAM групп.

Каждая процедура читает факты из StatSource, вычисляет производные значения
и возвращает CollectionResult: samples для публикации и ошибки по метрикам,
которые в этом тике пропущены. Публикует Poller.

Сбой одного факта не мешает остальным: что удалось прочитать, то и публикуется.
"""

from typing import Any, Awaitable, Callable, Optional

from telemetry_core.errors import CollectionError
from telemetry_core.metrics import CollectionResult

from telemetry_plugins.beam import events
from telemetry_plugins.beam.derived import (
    field,
    flag_to_int,
    parse_major_version,
    require_count,
    split_dirty,
)
from telemetry_plugins.beam.stat_source import StatSource


# Поля memory_breakdown, которые публикуются (остальные категории игнорируются)
MEMORY_FIELDS = ("total", "atom", "binary", "code", "ets", "processes")


async def _read(
    result: CollectionResult, accessor: Callable[[], Awaitable[dict[str, Any]]]
) -> Optional[dict[str, Any]]:
    try:
        return await accessor()
    except CollectionError as e:
        result.skip(e)
        return None


def _emit(
    result: CollectionResult,
    key: str,
    measurement: str,
    compute: Callable[[], Any],
    tags: Optional[dict[str, str]] = None,
) -> None:
    try:
        value = compute()
    except CollectionError as e:
        if e.metric is None:
            e.metric = key
        result.skip(e)
        return
    result.emit(key, {measurement: value}, tags)


async def collect_memory(source: StatSource) -> CollectionResult:
    """Один sample prom_ex.plugin.beam.memory со всеми доступными категориями."""
    result = CollectionResult()
    memory = await _read(result, source.memory_breakdown)
    if memory is None:
        return result

    measurements: dict[str, Any] = {}
    for name in MEMORY_FIELDS:
        try:
            measurements[name] = require_count(field(memory, name, "memory_breakdown"), f"memory.{name}")
        except CollectionError as e:
            result.skip(e)
    if measurements:
        result.emit(events.MEMORY, measurements)
    return result


async def collect_internal(source: StatSource) -> CollectionResult:
    """Счётчики объектов, очереди планировщиков и накопительные счётчики с момента старта."""
    result = CollectionResult()

    counts = await _read(result, source.counts)
    if counts is not None:
        for name, key in (
            ("port", events.PORT_COUNT),
            ("process", events.PROCESS_COUNT),
            ("atom", events.ATOM_COUNT),
            ("ets", events.ETS_COUNT),
        ):
            _emit(result, key, "count", lambda name=name: require_count(field(counts, name, "counts"), name))

    sched = await _read(result, source.scheduling_counters)
    if sched is not None:
        for normal_field, all_field, key in (
            ("active_tasks", "active_tasks_all", events.ACTIVE_TASK_COUNT),
            ("run_queue", "run_queue_all", events.RUN_QUEUE_COUNT),
        ):
            _emit(
                result, key, "count",
                lambda f=normal_field: require_count(field(sched, f, "scheduling_counters"), f),
                {"type": "normal"},
            )
            _emit(
                result, key, "count",
                lambda n=normal_field, a=all_field: split_dirty(
                    field(sched, a, "scheduling_counters"),
                    field(sched, n, "scheduling_counters"),
                    key,
                ),
                {"type": "dirty"},
            )

    since = await _read(result, source.since_start_counters)
    if since is not None:
        for name, key, tags in (
            ("context_switches", events.CONTEXT_SWITCH_COUNT, None),
            ("reductions", events.REDUCTION_COUNT, None),
            ("gc_count", events.GC_COUNT, None),
            ("gc_words_reclaimed", events.WORDS_RECLAIMED_COUNT, None),
            ("io_in_bytes", events.PORT_IO_COUNT, {"type": "input"}),
            ("io_out_bytes", events.PORT_IO_COUNT, {"type": "output"}),
            ("wall_clock_ms", events.UPTIME_COUNT, None),
        ):
            _emit(
                result, key, "count",
                lambda name=name: require_count(field(since, name, "since_start_counters"), name),
                tags,
            )

    return result


async def collect_system_info(source: StatSource) -> CollectionResult:
    """Флаги сборки VM, размер слова и мажорная версия OTP."""
    result = CollectionResult()
    flags = await _read(result, source.feature_flags)
    if flags is None:
        return result

    for name, key in (
        ("smp", events.SMP_SUPPORT),
        ("threads", events.THREAD_SUPPORT),
        ("time_correction", events.TIME_CORRECTION_SUPPORT),
    ):
        _emit(result, key, "enabled", lambda name=name: flag_to_int(field(flags, name, "feature_flags"), name))
    _emit(
        result, events.WORD_SIZE_BYTES, "size",
        lambda: require_count(field(flags, "word_size", "feature_flags"), "word_size"),
    )
    _emit(
        result, events.VERSION, "version",
        lambda: parse_major_version(field(flags, "version", "feature_flags")),
    )
    return result


async def collect_scheduler_info(source: StatSource) -> CollectionResult:
    result = CollectionResult()
    topo = await _read(result, source.scheduler_topology)
    if topo is None:
        return result

    for name, key in (
        ("dirty_cpu", events.DIRTY_CPU_SCHEDULERS),
        ("dirty_cpu_online", events.DIRTY_CPU_SCHEDULERS_ONLINE),
        ("dirty_io", events.DIRTY_IO_SCHEDULERS),
        ("schedulers", events.SCHEDULERS),
        ("schedulers_online", events.SCHEDULERS_ONLINE),
    ):
        _emit(
            result, key, "quantity",
            lambda name=name: require_count(field(topo, name, "scheduler_topology"), name),
        )
    return result


async def collect_cpu_topology(source: StatSource) -> CollectionResult:
    """
    Логические процессоры хоста.

    На части платформ runtime сообщает "unknown" (обычно для available):
    такая метрика пропускается, остальные публикуются.
    """
    result = CollectionResult()
    topo = await _read(result, source.topology)
    if topo is None:
        return result

    for name, key in (
        ("logical_processors", events.LOGICAL_PROCESSORS),
        ("available", events.LOGICAL_PROCESSORS_AVAILABLE),
        ("online", events.LOGICAL_PROCESSORS_ONLINE),
    ):
        _emit(
            result, key, "quantity",
            lambda name=name: require_count(field(topo, name, "topology"), name),
        )
    return result


async def collect_system_limits(source: StatSource) -> CollectionResult:
    result = CollectionResult()
    limits = await _read(result, source.limits)
    if limits is None:
        return result

    for name, key, measurement in (
        ("ets", events.ETS_LIMIT, "limit"),
        ("port", events.PORT_LIMIT, "limit"),
        ("process", events.PROCESS_LIMIT, "limit"),
        ("thread_pool_size", events.THREAD_POOL_SIZE, "size"),
        ("atom", events.ATOM_LIMIT, "limit"),
    ):
        _emit(
            result, key, measurement,
            lambda name=name: require_count(field(limits, name, "limits"), name),
        )
    return result
