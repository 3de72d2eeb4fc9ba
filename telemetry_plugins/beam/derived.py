"""
Производные значения: чистые функции без I/O.

Превращают сырые показания StatSource в значения, которые публикуются:
- split_dirty: dirty = all - normal (никогда не клампится)
- flag_to_int: bool -> 0/1 (downstream не знает булевого типа)
- parse_major_version: "26" / "26.2" -> 26
"""

from typing import Any, Mapping

from telemetry_core.errors import Inconsistent, Malformed, Unsupported


def field(values: Mapping[str, Any], key: str, fact: str) -> Any:
    """
    Достать поле факта.

    Raises:
        Unsupported: поле отсутствует или runtime сообщил "unknown"
    """
    value = values.get(key)
    if value is None or value == "unknown":
        raise Unsupported(f"{fact}.{key} не предоставляется runtime", fact=fact)
    return value


def require_count(value: Any, name: str = "value") -> int | float:
    """
    Raises:
        Malformed: значение не число (bool тоже не считается числом)
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise Malformed(f"{name} должно быть числом, got: {value!r}", metric=name)
    return value


def split_dirty(all_count: Any, normal_count: Any, name: str = "dirty") -> int | float:
    """
    Доля "dirty" из суммарного и "normal" счётчиков одного понятия.

    Raises:
        Malformed: один из счётчиков не число
        Inconsistent: all < normal (показания StatSource несогласованы)
    """
    total = require_count(all_count, f"{name}.all")
    normal = require_count(normal_count, f"{name}.normal")
    dirty = total - normal
    if dirty < 0:
        raise Inconsistent(
            f"{name}: all={total} меньше normal={normal}, dirty не публикуется",
            metric=name,
        )
    return dirty


def flag_to_int(value: Any, name: str = "flag") -> int:
    """
    Raises:
        Malformed: значение не bool и не 0/1
    """
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, int) and value in (0, 1):
        return value
    raise Malformed(f"{name} должен быть булевым, got: {value!r}", metric=name)


def parse_major_version(raw: Any, name: str = "version") -> int:
    """
    Мажорная версия OTP релиза.

    Raises:
        Malformed: строка не начинается с числа ("R16B", "", "abc")
    """
    if isinstance(raw, bool):
        raise Malformed(f"{name}: некорректная версия {raw!r}", metric=name)
    if isinstance(raw, int):
        return raw
    if not isinstance(raw, str):
        raise Malformed(f"{name}: некорректная версия {raw!r}", metric=name)
    major = raw.strip().split(".", 1)[0]
    if not major.isdigit():
        raise Malformed(f"{name}: некорректная версия {raw!r}", metric=name)
    return int(major)
