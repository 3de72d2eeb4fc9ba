"""
Абстракция времени для планировщика.

Poller не обращается к time/asyncio.sleep напрямую: это позволяет в тестах
подменять часы и детерминированно прокручивать интервалы опроса.
"""

import asyncio
import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Источник монотонного времени и ожидания."""

    @abstractmethod
    def monotonic(self) -> float:
        """Текущее монотонное время в секундах."""

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Приостановить текущую задачу на seconds секунд."""


class SystemClock(Clock):
    """Реальные часы: time.monotonic и asyncio.sleep."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))
