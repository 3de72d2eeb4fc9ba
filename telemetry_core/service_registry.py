"""
ServiceRegistry - реестр сервисов runtime.

Модули и плагины регистрируют сервисы (например, "logger.log")
и вызывают чужие сервисы по имени, не импортируя друг друга.
"""

import asyncio
from typing import Any, Awaitable, Callable


# Тип для сервисной функции
ServiceFunc = Callable[..., Awaitable[Any]]


class ServiceRegistry:
    """
    Реестр сервисов.

    - сервисы регистрируются по уникальному имени
    - вызовы маршрутизируются по имени
    """

    def __init__(self):
        self._services: dict[str, ServiceFunc] = {}
        self._lock = asyncio.Lock()

    async def register(self, service_name: str, func: ServiceFunc) -> None:
        """
        Зарегистрировать сервис.

        Raises:
            ValueError: если сервис с таким именем уже зарегистрирован
        """
        async with self._lock:
            if service_name in self._services:
                raise ValueError(f"Сервис '{service_name}' уже зарегистрирован")
            self._services[service_name] = func

    async def unregister(self, service_name: str) -> None:
        """Удалить сервис из реестра (неизвестное имя игнорируется)."""
        async with self._lock:
            self._services.pop(service_name, None)

    async def call(self, service_name: str, *args: Any, **kwargs: Any) -> Any:
        """
        Вызвать сервис.

        Raises:
            ValueError: если сервис не найден
        """
        async with self._lock:
            func = self._services.get(service_name)
            if func is None:
                raise ValueError(f"Сервис '{service_name}' не найден")

        # Вызываем вне lock, чтобы не блокировать другие вызовы
        return await func(*args, **kwargs)

    async def has_service(self, service_name: str) -> bool:
        async with self._lock:
            return service_name in self._services

    async def clear(self) -> None:
        """Очистить все сервисы."""
        async with self._lock:
            self._services.clear()
