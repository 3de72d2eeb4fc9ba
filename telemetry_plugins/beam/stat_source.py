"""
StatSource - адаптер над интерфейсом introspection наблюдаемого BEAM узла.

Каждый accessor возвращает один "факт" (словарь полей) и ничего не меняет.
Если runtime факт не предоставляет, accessor бросает Unsupported.

Реализации:
- SnapshotStatSource: последние снимки фактов в памяти процесса; обновляются
  через update() или событием beam.introspection на EventBus
- HttpStatSource: GET {base_url}/{fact} через aiohttp
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiohttp

from telemetry_core.errors import Malformed, SourceUnavailable, Unsupported


FACTS = (
    "memory_breakdown",
    "counts",
    "scheduling_counters",
    "since_start_counters",
    "limits",
    "topology",
    "scheduler_topology",
    "feature_flags",
)


class StatSource(ABC):
    """Базовый класс источника фактов."""

    @abstractmethod
    async def read(self, fact: str) -> dict[str, Any]:
        """
        Прочитать факт целиком.

        Raises:
            Unsupported: факт не предоставляется runtime
            SourceUnavailable: источник недоступен
            Malformed: ответ не является словарём полей
        """

    async def open(self) -> None:
        """Подготовить ресурсы (вызывается при старте плагина)."""

    async def close(self) -> None:
        """Освободить ресурсы (вызывается при остановке плагина)."""

    async def memory_breakdown(self) -> dict[str, Any]:
        """{total, atom, binary, code, ets, processes} в байтах."""
        return await self.read("memory_breakdown")

    async def counts(self) -> dict[str, Any]:
        """{process, port, atom, ets}"""
        return await self.read("counts")

    async def scheduling_counters(self) -> dict[str, Any]:
        """{active_tasks, active_tasks_all, run_queue, run_queue_all}"""
        return await self.read("scheduling_counters")

    async def since_start_counters(self) -> dict[str, Any]:
        """{context_switches, reductions, gc_count, gc_words_reclaimed, io_in_bytes, io_out_bytes, wall_clock_ms}"""
        return await self.read("since_start_counters")

    async def limits(self) -> dict[str, Any]:
        """{ets, port, process, atom, thread_pool_size}"""
        return await self.read("limits")

    async def topology(self) -> dict[str, Any]:
        """{logical_processors, available, online}"""
        return await self.read("topology")

    async def scheduler_topology(self) -> dict[str, Any]:
        """{dirty_cpu, dirty_cpu_online, dirty_io, schedulers, schedulers_online}"""
        return await self.read("scheduler_topology")

    async def feature_flags(self) -> dict[str, Any]:
        """{smp, threads, time_correction, word_size, version}"""
        return await self.read("feature_flags")


class SnapshotStatSource(StatSource):
    """
    Источник на снимках в памяти.

    Наблюдаемый runtime (или его агент) присылает снимки фактов; сбор
    читает последний снимок. Факт без снимка считается Unsupported.
    """

    def __init__(self, snapshot: Optional[dict[str, dict[str, Any]]] = None):
        self._facts: dict[str, dict[str, Any]] = {}
        for fact, values in (snapshot or {}).items():
            self.update(fact, values)

    def update(self, fact: str, values: dict[str, Any]) -> None:
        """
        Заменить снимок факта.

        Raises:
            ValueError: неизвестный факт или values не словарь
        """
        if fact not in FACTS:
            raise ValueError(f"Неизвестный факт: {fact!r}")
        if not isinstance(values, dict):
            raise ValueError(f"Снимок факта '{fact}' должен быть словарём, got: {type(values).__name__}")
        self._facts[fact] = dict(values)

    def forget(self, fact: str) -> None:
        """Удалить снимок факта (дальше он будет Unsupported)."""
        self._facts.pop(fact, None)

    async def read(self, fact: str) -> dict[str, Any]:
        values = self._facts.get(fact)
        if values is None:
            raise Unsupported(f"Факт '{fact}' не предоставлен runtime", fact=fact)
        return dict(values)

    async def handle_event(self, event_type: str, data: dict[str, Any]) -> None:
        """Обработчик события beam.introspection: {"fact": ..., "values": {...}}."""
        self.update(data["fact"], data["values"])


class HttpStatSource(StatSource):
    """
    Источник поверх HTTP introspection endpoint наблюдаемого узла.

    Example:
        source = HttpStatSource("http://127.0.0.1:9000/introspection", timeout=2.0)
        await source.open()
        memory = await source.memory_breakdown()
        await source.close()
    """

    UNSUPPORTED_STATUSES = (404, 501)

    def __init__(
        self,
        base_url: str,
        timeout: float = 2.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if not base_url:
            raise ValueError("base_url обязателен для HttpStatSource")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def open(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    async def read(self, fact: str) -> dict[str, Any]:
        if self._session is None or self._session.closed:
            await self.open()
        url = f"{self.base_url}/{fact}"

        try:
            async with self._session.get(url) as resp:
                if resp.status in self.UNSUPPORTED_STATUSES:
                    raise Unsupported(f"Факт '{fact}' не поддерживается (HTTP {resp.status})", fact=fact)
                if resp.status != 200:
                    raise SourceUnavailable(f"GET {url} вернул HTTP {resp.status}", fact=fact)
                try:
                    body = await resp.json(content_type=None)
                except ValueError as e:
                    raise Malformed(f"Некорректный JSON от {url}: {e}", fact=fact) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceUnavailable(f"GET {url} не выполнен: {e}", fact=fact) from e

        if not isinstance(body, dict):
            raise Malformed(f"Факт '{fact}' должен быть JSON объектом, got: {type(body).__name__}", fact=fact)
        return body
