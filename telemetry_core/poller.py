"""
Poller - планировщик сбора метрик.

Единая реализация для обоих режимов сбора:
- OneShot (manual):  Pending → Collected. Выполняется ровно один раз при start(),
                     до того как взведены таймеры периодических групп
- Periodic (polling): Idle → Collecting → Idle каждые interval_ms

Single-flight на группу: если тик пришёл, а предыдущий сбор этой же группы
ещё не завершён, тик пропускается (coalesced), а не ставится в очередь.
Группы независимы и собираются параллельно. Ошибки сбора не останавливают
таймер и не влияют на другие группы.
"""

import asyncio
import contextlib
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional

from telemetry_core.clock import Clock, SystemClock
from telemetry_core.emitter import Emitter
from telemetry_core.errors import CollectionError, Malformed
from telemetry_core.logger_helper import debug, error, info, log
from telemetry_core.metrics import MetricGroup


class GroupState(Enum):
    """Состояния группы."""
    PENDING = "pending"
    COLLECTED = "collected"
    IDLE = "idle"
    COLLECTING = "collecting"


@dataclass
class GroupStats:
    """Счётчики сбора одной группы (для /health и диагностики)."""
    state: str = GroupState.PENDING.value
    collections: int = 0
    coalesced: int = 0
    failures: int = 0
    samples: int = 0
    skipped_metrics: int = 0
    last_duration_ms: Optional[float] = None


class Poller:
    """
    Планировщик групп метрик.

    Группы регистрируются владельцем (обычно имя плагина) и снимаются
    целиком при остановке владельца.
    """

    def __init__(
        self,
        emitter: Emitter,
        clock: Optional[Clock] = None,
        runtime: Optional[Any] = None,
        shutdown_timeout: float = 10.0,
        on_groups_changed: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        """
        Args:
            on_groups_changed: вызывается после каждого изменения набора групп,
                до сбора новых manual групп (runtime пересобирает по нему каталог)
        """
        self._emitter = emitter
        self._clock = clock or SystemClock()
        self._runtime = runtime
        self._shutdown_timeout = shutdown_timeout
        self._on_groups_changed = on_groups_changed

        self._groups: dict[str, MetricGroup] = {}
        self._owners: dict[str, str] = {}
        self._stats: dict[str, GroupStats] = {}
        # Таймеры периодических групп: group_id -> task
        self._timers: dict[str, asyncio.Task] = {}
        # Текущий сбор группы (single-flight): group_id -> task
        self._inflight: dict[str, asyncio.Task] = {}
        # Manual группы, уже собранные за время жизни Poller
        self._collected_manual: set[str] = set()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def add_groups(self, owner: str, groups: Iterable[MetricGroup]) -> None:
        """
        Зарегистрировать группы владельца.

        Если Poller уже запущен, manual группы собираются сразу,
        а таймеры polling групп взводятся.

        Пакет регистрируется целиком или не регистрируется вовсе.

        Raises:
            ValueError: если группа с таким id уже зарегистрирована
        """
        added = list(groups)
        seen: set[str] = set()
        for group in added:
            if group.id in self._groups:
                raise ValueError(
                    f"Группа '{group.id}' уже зарегистрирована владельцем '{self._owners[group.id]}'"
                )
            if group.id in seen:
                raise ValueError(f"Группа '{group.id}' передана дважды")
            seen.add(group.id)

        for group in added:
            self._groups[group.id] = group
            self._owners[group.id] = owner
            self._stats.setdefault(
                group.id,
                GroupStats(state=(GroupState.IDLE if group.is_polling else GroupState.PENDING).value),
            )

        try:
            await self._notify_groups_changed()
        except Exception:
            for group in added:
                self._groups.pop(group.id, None)
                self._owners.pop(group.id, None)
            raise

        if self._running:
            await self._run_manual([g for g in added if not g.is_polling])
            for group in added:
                if group.is_polling:
                    self._arm(group)

    async def remove_groups(self, owner: str) -> None:
        """Снять все группы владельца. Текущие сборы дорабатывают сами."""
        for group_id in [gid for gid, o in self._owners.items() if o == owner]:
            await self._disarm(group_id)
            self._groups.pop(group_id, None)
            self._owners.pop(group_id, None)
        await self._notify_groups_changed()

    def groups(self) -> list[MetricGroup]:
        return list(self._groups.values())

    async def start(self) -> None:
        """Собрать manual группы, затем взвести таймеры polling групп."""
        if self._running:
            return
        self._running = True
        await self._run_manual([g for g in self._groups.values() if not g.is_polling])
        for group in list(self._groups.values()):
            if group.is_polling:
                self._arm(group)
        await info(
            self._runtime,
            "Poller запущен",
            component="poller",
            groups=len(self._groups),
        )

    async def stop(self) -> None:
        """Остановить таймеры; текущие сборы дорабатывают (не дольше shutdown_timeout)."""
        if not self._running:
            return
        self._running = False
        for group_id in list(self._timers):
            await self._disarm(group_id)

        pending = [t for t in self._inflight.values() if not t.done()]
        if pending:
            _, not_done = await asyncio.wait(pending, timeout=self._shutdown_timeout)
            for task in not_done:
                task.cancel()
            if not_done:
                await asyncio.gather(*not_done, return_exceptions=True)
        self._inflight.clear()
        await info(self._runtime, "Poller остановлен", component="poller")

    def stats(self) -> dict[str, dict[str, Any]]:
        """Снимок счётчиков по группам."""
        return {group_id: asdict(stats) for group_id, stats in self._stats.items()}

    async def collect_group(self, group: MetricGroup) -> int:
        """
        Выполнить один сбор группы и опубликовать результат.

        Returns:
            Количество опубликованных samples
        """
        stats = self._stats.setdefault(group.id, GroupStats())
        if group.is_polling:
            stats.state = GroupState.COLLECTING.value
        started = self._clock.monotonic()
        try:
            result = await group.collect()
        except CollectionError as exc:
            stats.failures += 1
            await self._report(group, exc)
            return 0
        except Exception as exc:
            stats.failures += 1
            await error(
                self._runtime,
                f"Сбор группы '{group.id}' завершился с ошибкой: {exc}",
                component="poller",
                group=group.id,
            )
            return 0
        finally:
            stats.collections += 1
            stats.last_duration_ms = (self._clock.monotonic() - started) * 1000.0
            stats.state = (GroupState.IDLE if group.is_polling else GroupState.COLLECTED).value

        for exc in result.errors:
            stats.skipped_metrics += 1
            await self._report(group, exc)

        published = 0
        for sample in result.samples:
            try:
                group.check_sample(sample)
            except Malformed as exc:
                stats.skipped_metrics += 1
                await self._report(group, exc)
                continue
            self._emitter.publish(sample.publication_key, sample.measurements, sample.tags)
            published += 1
        stats.samples += published
        return published

    async def _notify_groups_changed(self) -> None:
        if self._on_groups_changed is not None:
            await self._on_groups_changed()

    async def _run_manual(self, groups: list[MetricGroup]) -> None:
        todo = [g for g in groups if g.id not in self._collected_manual]
        if not todo:
            return
        # Помечаем до запуска: manual группа собирается ровно один раз
        self._collected_manual.update(g.id for g in todo)
        await asyncio.gather(*(self.collect_group(g) for g in todo))

    def _arm(self, group: MetricGroup) -> None:
        if group.id in self._timers:
            return
        self._timers[group.id] = asyncio.create_task(self._run_timer(group))

    async def _disarm(self, group_id: str) -> None:
        timer = self._timers.pop(group_id, None)
        if timer is None:
            return
        timer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await timer

    async def _run_timer(self, group: MetricGroup) -> None:
        interval = group.interval_ms / 1000.0
        stats = self._stats[group.id]
        next_tick = self._clock.monotonic() + interval
        while True:
            await self._clock.sleep(next_tick - self._clock.monotonic())
            now = self._clock.monotonic()
            next_tick += interval
            # Отстали больше чем на интервал - пропущенные тики не догоняем
            while next_tick <= now:
                next_tick += interval
                stats.coalesced += 1

            current = self._inflight.get(group.id)
            if current is not None and not current.done():
                stats.coalesced += 1
                await debug(
                    self._runtime,
                    f"Тик группы '{group.id}' пропущен: предыдущий сбор не завершён",
                    component="poller",
                    group=group.id,
                )
                continue
            self._inflight[group.id] = asyncio.create_task(self.collect_group(group))

    async def _report(self, group: MetricGroup, exc: CollectionError) -> None:
        await log(
            self._runtime,
            exc.log_level,
            f"Группа '{group.id}': {exc}",
            component="poller",
            group=group.id,
            **exc.context(),
        )
