"""
Таксономия ошибок сбора метрик.

Политика обработки (применяется Poller'ом и процедурами сбора):
- Unsupported       - факт не предоставляется наблюдаемым runtime: пропускаем
                      только затронутые метрики в этом тике
- SourceUnavailable - транспорт до StatSource недоступен: как Unsupported
- Inconsistent      - производное значение получилось отрицательным:
                      диагностика в лог, производный sample не публикуется
- Malformed         - сырое значение не прошло разбор: пропускаем только эту метрику
- EmitterUnavailable - канал публикации не принимает sample: sample отбрасывается

Ни одна из ошибок не останавливает таймер группы и не влияет на другие группы.
"""

from typing import Optional


class TelemetryError(Exception):
    """Базовое исключение подсистемы телеметрии."""


class CatalogError(TelemetryError, ValueError):
    """Невалидное объявление каталога метрик (ошибка конструирования)."""


class CollectionError(TelemetryError):
    """
    Ошибка сбора одной или нескольких метрик.

    Args:
        message: описание проблемы
        fact: имя факта StatSource (например, "topology")
        metric: имя затронутой метрики, если ошибка относится к одной метрике
    """

    # Уровень логирования, с которым Poller сообщает об ошибке
    log_level = "warning"

    def __init__(self, message: str, fact: Optional[str] = None, metric: Optional[str] = None):
        super().__init__(message)
        self.fact = fact
        self.metric = metric

    def context(self) -> dict:
        """Контекст для logger.log."""
        ctx = {"error": type(self).__name__}
        if self.fact:
            ctx["fact"] = self.fact
        if self.metric:
            ctx["metric"] = self.metric
        return ctx


class Unsupported(CollectionError):
    """Факт не предоставляется текущей сборкой/платформой наблюдаемого runtime."""


class SourceUnavailable(CollectionError):
    """StatSource недоступен (сеть, таймаут, неожиданный ответ)."""


class Inconsistent(CollectionError):
    """Производное значение нарушает инвариант (например, отрицательный счётчик)."""

    log_level = "error"


class Malformed(CollectionError):
    """Сырое значение не удалось разобрать (например, строка версии)."""


class EmitterUnavailable(TelemetryError):
    """Канал публикации не может принять sample."""
