import asyncio
import sys
import pathlib
from typing import Any, Mapping, Optional

import pytest

# Ensure repository root is on sys.path so packages (telemetry_core, telemetry_plugins, telemetry_modules) import correctly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from telemetry_core.clock import Clock
from telemetry_core.emitter import Emitter
from telemetry_plugins.beam.stat_source import SnapshotStatSource


class RecordingEmitter(Emitter):
    """Emitter, который просто запоминает опубликованные samples."""

    def __init__(self):
        self.published: list[tuple[str, dict, dict]] = []

    def publish(self, publication_key: str, measurements: Mapping[str, Any], tags: Optional[Mapping[str, str]] = None) -> None:
        self.published.append((publication_key, dict(measurements), dict(tags or {})))

    def by_key(self, publication_key: str) -> list[tuple[dict, dict]]:
        return [(m, t) for k, m, t in self.published if k == publication_key]

    def clear(self) -> None:
        self.published.clear()


async def settle(rounds: int = 20) -> None:
    """Дать event loop выполнить готовые задачи."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock(Clock):
    """Ручные часы: время двигается только через advance()."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._sleepers: list[tuple[float, asyncio.Future]] = []

    def monotonic(self) -> float:
        return self._now

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        fut = asyncio.get_running_loop().create_future()
        self._sleepers.append((self._now + seconds, fut))
        await fut

    async def advance(self, seconds: float) -> None:
        """Сдвинуть время, по очереди будя всех, чей срок наступил."""
        target = self._now + seconds
        while True:
            await settle()
            due = [deadline for deadline, fut in self._sleepers if deadline <= target and not fut.done()]
            if not due:
                break
            self._now = max(self._now, min(due))
            for entry in list(self._sleepers):
                deadline, fut = entry
                if fut.done():
                    self._sleepers.remove(entry)
                elif deadline <= self._now:
                    self._sleepers.remove(entry)
                    fut.set_result(None)
        self._now = target
        await settle()


BEAM_SNAPSHOT = {
    "memory_breakdown": {
        "total": 1000, "atom": 100, "binary": 50, "code": 200, "ets": 30, "processes": 400,
        "system": 600, "processes_used": 390, "atom_used": 90,
    },
    "counts": {"process": 120, "port": 8, "atom": 15000, "ets": 40},
    "scheduling_counters": {"active_tasks": 3, "active_tasks_all": 5, "run_queue": 1, "run_queue_all": 2},
    "since_start_counters": {
        "context_switches": 10_000, "reductions": 2_000_000, "gc_count": 350,
        "gc_words_reclaimed": 900_000, "io_in_bytes": 4096, "io_out_bytes": 2048,
        "wall_clock_ms": 60_000,
    },
    "limits": {"ets": 8192, "port": 65536, "process": 262144, "atom": 1048576, "thread_pool_size": 1},
    "topology": {"logical_processors": 8, "available": 8, "online": 8},
    "scheduler_topology": {"dirty_cpu": 8, "dirty_cpu_online": 8, "dirty_io": 10, "schedulers": 8, "schedulers_online": 8},
    "feature_flags": {"smp": True, "threads": True, "time_correction": False, "word_size": 8, "version": "26"},
}


@pytest.fixture
def recording_emitter():
    return RecordingEmitter()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def beam_source():
    return SnapshotStatSource(BEAM_SNAPSHOT)
