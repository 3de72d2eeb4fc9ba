"""
Emitter - единственная граница, через которую наружу уходят samples.

publish() синхронный и не блокирующий: sample кладётся в ограниченный буфер,
отдельная задача перекладывает его в EventBus. Если буфер переполнен или
emitter не запущен, sample отбрасывается (EmitterUnavailable) - надёжность
доставки забота экспортёра, а не ядра.
"""

import asyncio
import contextlib
import time
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from telemetry_core.errors import EmitterUnavailable
from telemetry_core.event_bus import EventBus
from telemetry_core.logger_helper import warning


class Emitter(ABC):
    """Контракт публикации samples (fire-and-forget)."""

    @abstractmethod
    def publish(
        self,
        publication_key: str,
        measurements: Mapping[str, Any],
        tags: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Опубликовать sample. Ничего не возвращает и не ждёт потребителей."""


class EventBusEmitter(Emitter):
    """
    Emitter поверх EventBus с буфером asyncio.Queue.

    Полезная нагрузка события:
        {"measurements": {...}, "tags": {...}, "timestamp": <unix time>}
    """

    def __init__(self, event_bus: EventBus, buffer_size: int = 1024, runtime: Optional[Any] = None):
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive integer, got: {buffer_size}")
        self._event_bus = event_bus
        self._buffer_size = buffer_size
        self._runtime = runtime
        self._queue: Optional[asyncio.Queue] = None
        self._drain_task: Optional[asyncio.Task] = None
        # Фоновые задачи логирования (держим ссылки, чтобы их не собрал GC)
        self._log_tasks: set[asyncio.Task] = set()
        self._drop_reported = False
        self.published = 0
        self.dropped = 0

    @property
    def is_running(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    async def start(self) -> None:
        """Создать буфер и запустить задачу доставки."""
        if self.is_running:
            return
        self._queue = asyncio.Queue(maxsize=self._buffer_size)
        self._drain_task = asyncio.create_task(self._drain())

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Остановить доставку.

        Уже принятые samples доставляются, пока не истечёт timeout;
        остальное отбрасывается.
        """
        if self._drain_task is None:
            return
        queue = self._queue
        self._queue = None  # новые samples больше не принимаются
        if queue is not None:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(queue.join(), timeout=timeout)
        self._drain_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._drain_task
        self._drain_task = None
        if self._log_tasks:
            await asyncio.gather(*self._log_tasks, return_exceptions=True)

    def publish(
        self,
        publication_key: str,
        measurements: Mapping[str, Any],
        tags: Optional[Mapping[str, str]] = None,
    ) -> None:
        payload = {
            "measurements": dict(measurements),
            "tags": dict(tags or {}),
            "timestamp": time.time(),
        }
        try:
            self._offer(publication_key, payload)
        except EmitterUnavailable as exc:
            self.dropped += 1
            self._report_drop(publication_key, exc)
            return
        self._drop_reported = False

    def _offer(self, publication_key: str, payload: dict[str, Any]) -> None:
        if self._queue is None or not self.is_running:
            raise EmitterUnavailable("emitter не запущен")
        try:
            self._queue.put_nowait((publication_key, payload))
        except asyncio.QueueFull:
            raise EmitterUnavailable(f"буфер emitter переполнен ({self._buffer_size})")

    def _report_drop(self, publication_key: str, exc: EmitterUnavailable) -> None:
        # Один warning на серию отброшенных samples, чтобы не заливать лог
        if self._drop_reported:
            return
        self._drop_reported = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(warning(
            self._runtime,
            f"Sample '{publication_key}' отброшен: {exc}",
            component="emitter",
            dropped=self.dropped,
        ))
        self._log_tasks.add(task)
        task.add_done_callback(self._log_tasks.discard)

    async def _drain(self) -> None:
        queue = self._queue
        assert queue is not None
        while True:
            publication_key, payload = await queue.get()
            try:
                await self._event_bus.publish(publication_key, payload)
                self.published += 1
            except Exception as exc:
                await warning(
                    self._runtime,
                    f"Не удалось доставить sample '{publication_key}': {exc}",
                    component="emitter",
                )
            finally:
                queue.task_done()
