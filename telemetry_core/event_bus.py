"""
EventBus - конвейер событий, в который публикуются samples метрик.

Издатели (Emitter) и подписчики (экспортёры) не знают друг о друге:
- Emitter публикует событие с ключом публикации и полезной нагрузкой
- экспортёр подписывается на нужные ключи
- EventBus маршрутизирует события к подписчикам
"""

import asyncio
from collections import defaultdict
from typing import Any, Awaitable, Callable, Optional

from telemetry_core.logger_helper import warning


# Тип для обработчика событий
EventHandler = Callable[[str, dict[str, Any]], Awaitable[None]]


class EventBus:
    """
    Простая шина событий.

    Ошибки в обработчиках не прерывают доставку другим подписчикам
    и не поднимаются к издателю - только логируются.
    """

    def __init__(self, runtime: Optional[Any] = None):
        # runtime нужен только для логирования ошибок обработчиков
        self._runtime = runtime
        # Словарь: event_type -> list[handler]
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Подписаться на событие.

        Args:
            event_type: тип события (ключ публикации, например "prom_ex.plugin.beam.memory")
            handler: async функция-обработчик (event_type, data)
        """
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """Отписаться от события. Неизвестный обработчик игнорируется."""
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[event_type]

    async def publish(self, event_type: str, data: dict[str, Any]) -> None:
        """
        Опубликовать событие всем подписчикам.

        Обработчики запускаются параллельно; исключения логируются.
        """
        handlers = list(self._handlers.get(event_type, []))
        if not handlers:
            return

        results = await asyncio.gather(
            *(handler(event_type, data) for handler in handlers),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                await warning(
                    self._runtime,
                    f"Обработчик события '{event_type}' завершился с ошибкой: {result}",
                    component="event_bus",
                )

    def get_subscribers_count(self, event_type: str) -> int:
        """Количество подписчиков на событие."""
        return len(self._handlers.get(event_type, []))

    def clear(self) -> None:
        """Очистить все подписки."""
        self._handlers.clear()
