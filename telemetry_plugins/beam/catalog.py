"""
Декларативный каталог метрик BEAM.

Polling группы:
- beam_memory_polling_metrics
- beam_internal_polling_metrics

Manual группы:
- beam_cpu_topology_manual_metrics
- beam_system_limits_manual_metrics
- beam_system_info_manual_metrics
- beam_scheduler_manual_metrics

Каталог строится явным вызовом build_catalog(); глобального реестра нет.
"""

from functools import partial

from telemetry_core.metrics import MetricCatalog, MetricDef, MetricGroup, OneShot, Periodic, Unit

from telemetry_plugins.beam import collectors, events
from telemetry_plugins.beam.stat_source import StatSource


DEFAULT_POLL_RATE = 5_000

TYPE = frozenset({"type"})


def memory_metrics(source: StatSource, poll_rate: int) -> MetricGroup:
    return MetricGroup(
        "beam_memory_polling_metrics",
        Periodic(poll_rate),
        (
            MetricDef(
                "beam.memory.allocated.bytes", events.MEMORY,
                "The total amount of memory currently allocated.",
                "total", unit=Unit.BYTE,
            ),
            MetricDef(
                "beam.memory.atom.total.bytes", events.MEMORY,
                "The total amount of memory currently allocated for atoms.",
                "atom", unit=Unit.BYTE,
            ),
            MetricDef(
                "beam.memory.binary.total.bytes", events.MEMORY,
                "The total amount of memory currently allocated for binaries.",
                "binary", unit=Unit.BYTE,
            ),
            MetricDef(
                "beam.memory.code.total.bytes", events.MEMORY,
                "The total amount of memory currently allocated for Erlang code.",
                "code", unit=Unit.BYTE,
            ),
            MetricDef(
                "beam.memory.ets.total.bytes", events.MEMORY,
                "The total amount of memory currently allocated for ETS tables.",
                "ets", unit=Unit.BYTE,
            ),
            MetricDef(
                "beam.memory.processes.total.bytes", events.MEMORY,
                "The total amount of memory currently allocated to Erlang processes.",
                "processes", unit=Unit.BYTE,
            ),
        ),
        partial(collectors.collect_memory, source),
    )


def internal_metrics(source: StatSource, poll_rate: int) -> MetricGroup:
    return MetricGroup(
        "beam_internal_polling_metrics",
        Periodic(poll_rate),
        (
            MetricDef(
                "beam.stats.active_task.count", events.ACTIVE_TASK_COUNT,
                "The number of processes and ports that are ready to run, or are currently running.",
                "count", tags=TYPE,
            ),
            MetricDef(
                "beam.stats.run_queue.count", events.RUN_QUEUE_COUNT,
                "The number of processes and ports that are ready to run and are in the run queue.",
                "count", tags=TYPE,
            ),
            MetricDef(
                "beam.stats.context_switch.count", events.CONTEXT_SWITCH_COUNT,
                "The total number of context switches since the system started.",
                "count",
            ),
            MetricDef(
                "beam.stats.reduction.count", events.REDUCTION_COUNT,
                "The total number of reductions since the system started.",
                "count",
            ),
            MetricDef(
                "beam.stats.gc.count", events.GC_COUNT,
                "The total number of garbage collections since the system started.",
                "count",
            ),
            MetricDef(
                "beam.stats.words_reclaimed.count", events.WORDS_RECLAIMED_COUNT,
                "The total number of words reclaimed since the system started.",
                "count",
            ),
            MetricDef(
                "beam.stats.port_io.byte.count", events.PORT_IO_COUNT,
                "The total number of bytes sent and received through ports since the system started.",
                "count", tags=TYPE, unit=Unit.BYTE,
            ),
            MetricDef(
                "beam.stats.uptime.milliseconds.count", events.UPTIME_COUNT,
                "The total number of wall clock milliseconds that have passed since the system started.",
                "count", unit=Unit.MILLISECOND,
            ),
            MetricDef(
                "beam.stats.port.count", events.PORT_COUNT,
                "A count of how many ports are currently active.",
                "count",
            ),
            MetricDef(
                "beam.stats.process.count", events.PROCESS_COUNT,
                "A count of how many Erlang processes are currently running.",
                "count",
            ),
            MetricDef(
                "beam.stats.atom.count", events.ATOM_COUNT,
                "A count of how many atoms are currently allocated.",
                "count",
            ),
            MetricDef(
                "beam.stats.ets.count", events.ETS_COUNT,
                "A count of how many ETS tables currently exist.",
                "count",
            ),
        ),
        partial(collectors.collect_internal, source),
    )


def system_info(source: StatSource) -> MetricGroup:
    return MetricGroup(
        "beam_system_info_manual_metrics",
        OneShot(),
        (
            MetricDef(
                "beam.system.version.info", events.VERSION,
                "The OTP release major version.",
                "version",
            ),
            MetricDef(
                "beam.system.smp_support.info", events.SMP_SUPPORT,
                "Whether the BEAM instance has been compiled with SMP support.",
                "enabled",
            ),
            MetricDef(
                "beam.system.thread_support.info", events.THREAD_SUPPORT,
                "Whether the BEAM instance has been compiled with threading support.",
                "enabled",
            ),
            MetricDef(
                "beam.system.time_correction_support.info", events.TIME_CORRECTION_SUPPORT,
                "Whether the BEAM instance has time correction support.",
                "enabled",
            ),
            MetricDef(
                "beam.system.word_size_bytes.info", events.WORD_SIZE_BYTES,
                "The size of Erlang term words in bytes.",
                "size",
            ),
        ),
        partial(collectors.collect_system_info, source),
    )


def scheduler_info(source: StatSource) -> MetricGroup:
    return MetricGroup(
        "beam_scheduler_manual_metrics",
        OneShot(),
        (
            MetricDef(
                "beam.system.dirty_cpu_schedulers.info", events.DIRTY_CPU_SCHEDULERS,
                "The total number of dirty CPU scheduler threads used by the BEAM.",
                "quantity",
            ),
            MetricDef(
                "beam.system.dirty_cpu_schedulers_online.info", events.DIRTY_CPU_SCHEDULERS_ONLINE,
                "The total number of dirty CPU schedulers that are online.",
                "quantity",
            ),
            MetricDef(
                "beam.system.dirty_io_schedulers.info", events.DIRTY_IO_SCHEDULERS,
                "The total number of dirty I/O schedulers used to execute I/O bound native functions.",
                "quantity",
            ),
            MetricDef(
                "beam.system.schedulers.info", events.SCHEDULERS,
                "The number of scheduler threads in use by the BEAM.",
                "quantity",
            ),
            MetricDef(
                "beam.system.schedulers_online.info", events.SCHEDULERS_ONLINE,
                "The number of scheduler threads that are online.",
                "quantity",
            ),
        ),
        partial(collectors.collect_scheduler_info, source),
    )


def cpu_topology_info(source: StatSource) -> MetricGroup:
    return MetricGroup(
        "beam_cpu_topology_manual_metrics",
        OneShot(),
        (
            MetricDef(
                "beam.system.logical_processors.info", events.LOGICAL_PROCESSORS,
                "The total number of logical processors on the host machine.",
                "quantity",
            ),
            MetricDef(
                "beam.system.logical_processors_available.info", events.LOGICAL_PROCESSORS_AVAILABLE,
                "The total number of logical processors available to the BEAM.",
                "quantity",
            ),
            MetricDef(
                "beam.system.logical_processors_online.info", events.LOGICAL_PROCESSORS_ONLINE,
                "The total number of logical processors online on the host machine.",
                "quantity",
            ),
        ),
        partial(collectors.collect_cpu_topology, source),
    )


def system_limits_info(source: StatSource) -> MetricGroup:
    return MetricGroup(
        "beam_system_limits_manual_metrics",
        OneShot(),
        (
            MetricDef(
                "beam.system.ets_limit.info", events.ETS_LIMIT,
                "The maximum number of ETS tables allowed (this is partially obsolete given that "
                "the number of ETS tables is limited by available memory).",
                "limit",
            ),
            MetricDef(
                "beam.system.port_limit.info", events.PORT_LIMIT,
                "The maximum number of ports that can simultaneously exist on the BEAM instance.",
                "limit",
            ),
            MetricDef(
                "beam.system.process_limit.info", events.PROCESS_LIMIT,
                "The maximum number of processes that can simultaneously exist on the BEAM instance.",
                "limit",
            ),
            MetricDef(
                "beam.system.thread_pool_size.info", events.THREAD_POOL_SIZE,
                "The number of async threads in the async threads pool used for async driver calls.",
                "size",
            ),
            MetricDef(
                "beam.system.atom_limit.info", events.ATOM_LIMIT,
                "The maximum number of atoms allowed.",
                "limit",
            ),
        ),
        partial(collectors.collect_system_limits, source),
    )


def polling_groups(source: StatSource, poll_rate: int = DEFAULT_POLL_RATE) -> list[MetricGroup]:
    """Polling группы; poll_rate (мс) применяется ко всем."""
    return [
        memory_metrics(source, poll_rate),
        internal_metrics(source, poll_rate),
    ]


def manual_groups(source: StatSource) -> list[MetricGroup]:
    return [
        cpu_topology_info(source),
        system_limits_info(source),
        system_info(source),
        scheduler_info(source),
    ]


def build_catalog(source: StatSource, poll_rate: int = DEFAULT_POLL_RATE) -> MetricCatalog:
    """
    Полный каталог BEAM метрик поверх source.

    Raises:
        CatalogError: poll_rate не положительное целое
    """
    return MetricCatalog(polling_groups(source, poll_rate) + manual_groups(source))
