from __future__ import annotations

from datetime import datetime, timezone

from pgcrfinder.errors import InvalidTargetError


def getUtcNow() -> datetime:
    return datetime.now(timezone.utc)


def getUtcNowIso() -> str:
    """
    Назначение:
        Возвращает текущее время в UTC ISO 8601.

    Выходные данные:
        str
            Например: 2026-01-11T17:22:10+00:00
    """
    return getUtcNow().isoformat()


def getDurationMs(startMonotonic: float, endMonotonic: float) -> int:
    """Длительность в миллисекундах по monotonic timestamps."""
    return int((endMonotonic - startMonotonic) * 1000)


def parseIsoTimestamp(value: str) -> datetime:
    """
    Назначение:
        Разбирает RFC 3339 timestamp (суффикс Z или явное смещение).

    Выходные данные:
        datetime с tzinfo.

    Ошибки:
        ValueError: строка не разбирается или в ней нет смещения.
    """
    text = (value or "").strip()
    if not text:
        raise ValueError("empty timestamp")
    if text[-1] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None or parsed.utcoffset() is None:
        raise ValueError("timestamp has no UTC offset")
    return parsed


def parseTimestamp(value: str | None, now: datetime | None = None) -> datetime:
    """
    Назначение:
        Разбор целевого timestamp из пользовательского ввода (CLI/HTTP).

    Входные данные:
        value: str | None
            RFC 3339 строка или "now".
        now: datetime | None
            Значение для "now" (по умолчанию текущее UTC время).

    Ошибки:
        InvalidTargetError: пустое или некорректное значение.
    """
    if value is None or not value.strip():
        raise InvalidTargetError(value, "value is required")
    if value.strip().lower() == "now":
        return now if now is not None else getUtcNow()
    try:
        return parseIsoTimestamp(value)
    except ValueError as exc:
        raise InvalidTargetError(value, str(exc)) from exc


def formatTimestamp(value: datetime) -> str:
    """RFC 3339 в UTC с суффиксом Z."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
