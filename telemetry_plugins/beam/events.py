"""
Ключи публикации (имена событий) BEAM плагина.

Иерархические имена совместимы с существующими дашбордами:
prom_ex.plugin.beam.<...>
"""

EVENT_PREFIX = "prom_ex.plugin.beam"


def beam_event(*parts: str) -> str:
    """beam_event("port", "count") -> "prom_ex.plugin.beam.port.count"."""
    return ".".join((EVENT_PREFIX,) + parts)


# Событие, через которое наблюдаемый runtime передаёт снимки introspection
# в SnapshotStatSource: {"fact": str, "values": dict}
INTROSPECTION_EVENT = "beam.introspection"

# Polling: memory
MEMORY = beam_event("memory")

# Polling: internal
ACTIVE_TASK_COUNT = beam_event("active_task", "count")
RUN_QUEUE_COUNT = beam_event("run_queue", "count")
CONTEXT_SWITCH_COUNT = beam_event("context_switch", "count")
REDUCTION_COUNT = beam_event("reduction", "count")
GC_COUNT = beam_event("gc", "count")
WORDS_RECLAIMED_COUNT = beam_event("words_reclaimed", "count")
PORT_IO_COUNT = beam_event("port_io", "count")
UPTIME_COUNT = beam_event("uptime", "count")
PORT_COUNT = beam_event("port", "count")
PROCESS_COUNT = beam_event("process", "count")
ATOM_COUNT = beam_event("atom", "count")
ETS_COUNT = beam_event("ets", "count")

# Manual: system info
VERSION = beam_event("version")
SMP_SUPPORT = beam_event("smp_support")
THREAD_SUPPORT = beam_event("thread_support")
TIME_CORRECTION_SUPPORT = beam_event("time_correction_support")
WORD_SIZE_BYTES = beam_event("word_size_bytes")

# Manual: schedulers
DIRTY_CPU_SCHEDULERS = beam_event("dirty_cpu_schedulers")
DIRTY_CPU_SCHEDULERS_ONLINE = beam_event("dirty_cpu_schedulers_online")
DIRTY_IO_SCHEDULERS = beam_event("dirty_io_schedulers")
SCHEDULERS = beam_event("schedulers")
SCHEDULERS_ONLINE = beam_event("schedulers_online")

# Manual: CPU topology
LOGICAL_PROCESSORS = beam_event("logical_processors")
LOGICAL_PROCESSORS_AVAILABLE = beam_event("logical_processors_available")
LOGICAL_PROCESSORS_ONLINE = beam_event("logical_processors_online")

# Manual: system limits
ETS_LIMIT = beam_event("ets_limit")
PORT_LIMIT = beam_event("port_limit")
PROCESS_LIMIT = beam_event("process_limit")
THREAD_POOL_SIZE = beam_event("thread_pool_size")
ATOM_LIMIT = beam_event("atom_limit")
