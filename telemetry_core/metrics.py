"""
Модель данных метрик: определения, группы, samples и каталог.

- MetricDef    - декларативное описание одной метрики (имя, ключ публикации,
                 описание, поле значения, теги, единица измерения)
- MetricGroup  - группа метрик с общим режимом сбора (cadence) и процедурой сбора
- Sample       - одна публикация: ключ + измерения + теги
- MetricCatalog - неизменяемый реестр групп, валидируется при создании

Каталог создаётся один раз при старте и дальше только читается.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

from telemetry_core.errors import CatalogError, CollectionError, Malformed


class Unit(Enum):
    """Единицы измерения (метаданные для экспортёра)."""
    BYTE = "byte"
    MILLISECOND = "millisecond"


@dataclass(frozen=True)
class OneShot:
    """Ручная (manual) группа: собирается ровно один раз при старте."""


@dataclass(frozen=True)
class Periodic:
    """Периодическая (polling) группа: собирается каждые interval_ms."""
    interval_ms: int


Cadence = Union[OneShot, Periodic]


@dataclass(frozen=True)
class MetricDef:
    """Определение одной метрики."""

    name: str
    publication_key: str
    description: str
    value_field: str
    tags: frozenset = frozenset()
    unit: Optional[Unit] = None

    def __post_init__(self) -> None:
        for attr in ("name", "publication_key", "description", "value_field"):
            value = getattr(self, attr)
            if not isinstance(value, str) or not value:
                raise CatalogError(f"MetricDef.{attr} must be non-empty string, got: {value!r}")
        # Разрешаем передавать теги списком/кортежем
        object.__setattr__(self, "tags", frozenset(self.tags))


@dataclass(frozen=True)
class Sample:
    """Одна публикация в конвейер событий. Timestamp ставится при публикации."""

    publication_key: str
    measurements: Mapping[str, Any]
    tags: Mapping[str, str] = field(default_factory=dict)


@dataclass
class CollectionResult:
    """
    Результат одного вызова процедуры сбора.

    samples - что публиковать, errors - метрики, пропущенные в этом тике.
    """

    samples: list[Sample] = field(default_factory=list)
    errors: list[CollectionError] = field(default_factory=list)

    def emit(self, publication_key: str, measurements: Mapping[str, Any], tags: Optional[Mapping[str, str]] = None) -> None:
        self.samples.append(Sample(publication_key, dict(measurements), dict(tags or {})))

    def skip(self, error: CollectionError) -> None:
        self.errors.append(error)


CollectFunc = Callable[[], Awaitable[CollectionResult]]


@dataclass(frozen=True)
class MetricGroup:
    """Группа метрик с общим cadence и процедурой сбора."""

    id: str
    cadence: Cadence
    metrics: tuple
    collect: CollectFunc = field(compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise CatalogError(f"MetricGroup.id must be non-empty string, got: {self.id!r}")
        object.__setattr__(self, "metrics", tuple(self.metrics))
        if not self.metrics:
            raise CatalogError(f"Группа '{self.id}' не содержит метрик")
        if isinstance(self.cadence, Periodic):
            interval = self.cadence.interval_ms
            if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
                raise CatalogError(
                    f"Группа '{self.id}': interval_ms must be positive integer, got: {interval!r}"
                )
        elif not isinstance(self.cadence, OneShot):
            raise CatalogError(f"Группа '{self.id}': неизвестный cadence {self.cadence!r}")
        if not callable(self.collect):
            raise CatalogError(f"Группа '{self.id}': collect must be callable")

        # Все определения с общим ключом публикации обязаны объявлять одни и те же теги
        tags_by_key: dict[str, frozenset] = {}
        for metric in self.metrics:
            known = tags_by_key.setdefault(metric.publication_key, metric.tags)
            if known != metric.tags:
                raise CatalogError(
                    f"Группа '{self.id}': метрики с ключом '{metric.publication_key}' "
                    f"объявляют разные теги"
                )

    @property
    def is_polling(self) -> bool:
        return isinstance(self.cadence, Periodic)

    @property
    def interval_ms(self) -> Optional[int]:
        return self.cadence.interval_ms if isinstance(self.cadence, Periodic) else None

    def publication_keys(self) -> list[str]:
        """Ключи публикации группы в порядке объявления (без повторов)."""
        return list(dict.fromkeys(m.publication_key for m in self.metrics))

    def check_sample(self, sample: Sample) -> None:
        """
        Проверить sample на соответствие объявлениям группы.

        Raises:
            Malformed: неизвестный ключ, лишние поля, не те теги или не числовое значение
        """
        declared = [m for m in self.metrics if m.publication_key == sample.publication_key]
        if not declared:
            raise Malformed(f"Ключ '{sample.publication_key}' не объявлен в группе '{self.id}'")

        fields = {m.value_field for m in declared}
        extra = set(sample.measurements) - fields
        if extra:
            raise Malformed(f"Необъявленные поля {sorted(extra)} для '{sample.publication_key}'")
        if not sample.measurements:
            raise Malformed(f"Пустой sample для '{sample.publication_key}'")
        for key, value in sample.measurements.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise Malformed(f"Поле '{key}' должно быть числом, got: {value!r}")

        if set(sample.tags) != set(declared[0].tags):
            raise Malformed(
                f"Теги {sorted(sample.tags)} не совпадают с объявленными "
                f"{sorted(declared[0].tags)} для '{sample.publication_key}'"
            )


class MetricCatalog:
    """
    Неизменяемый каталог групп метрик.

    Валидирует при создании:
    - уникальность id групп
    - уникальность имён метрик во всём каталоге
    - ключ публикации принадлежит ровно одной группе
    """

    def __init__(self, groups: Iterable[MetricGroup]):
        self._groups: tuple = tuple(groups)
        self._by_id: dict[str, MetricGroup] = {}
        self._by_key: dict[str, list[MetricDef]] = {}

        names: set[str] = set()
        key_owner: dict[str, str] = {}
        for group in self._groups:
            if group.id in self._by_id:
                raise CatalogError(f"Группа '{group.id}' объявлена дважды")
            self._by_id[group.id] = group
            for metric in group.metrics:
                if metric.name in names:
                    raise CatalogError(f"Метрика '{metric.name}' объявлена дважды")
                names.add(metric.name)
                owner = key_owner.setdefault(metric.publication_key, group.id)
                if owner != group.id:
                    raise CatalogError(
                        f"Ключ '{metric.publication_key}' используется группами '{owner}' и '{group.id}'"
                    )
                self._by_key.setdefault(metric.publication_key, []).append(metric)

    def groups(self) -> list[MetricGroup]:
        return list(self._groups)

    def polling_groups(self) -> list[MetricGroup]:
        return [g for g in self._groups if g.is_polling]

    def manual_groups(self) -> list[MetricGroup]:
        return [g for g in self._groups if not g.is_polling]

    def get(self, group_id: str) -> Optional[MetricGroup]:
        return self._by_id.get(group_id)

    def metrics(self) -> list[MetricDef]:
        return [m for g in self._groups for m in g.metrics]

    def metrics_for(self, publication_key: str) -> list[MetricDef]:
        """Все определения, публикуемые под ключом (пустой список, если ключ неизвестен)."""
        return list(self._by_key.get(publication_key, []))

    def publication_keys(self) -> list[str]:
        return list(self._by_key.keys())

    def __len__(self) -> int:
        return len(self._groups)
