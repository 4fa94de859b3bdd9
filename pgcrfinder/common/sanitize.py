from __future__ import annotations

SENSITIVE_HEADERS = ("x-api-key", "authorization")


def maskSecret(value: str | None) -> str | None:
    """
    Назначение:
        Маскирует секрет (API key) для безопасного вывода в stdout/logs.

    Выходные данные:
        '***', если значение задано, иначе None.
    """
    if value is None:
        return None
    return "***"


def truncateText(value: str | None, limit: int = 200) -> str | None:
    """
    Назначение:
        Ограничивает длину текста (тела ответов, сообщения ошибок) в логах и отчётах.
    """
    if value is None:
        return None
    if len(value) <= limit:
        return value
    suffix = "..." if limit > 3 else ""
    return value[: limit - len(suffix)] + suffix


def maskHeaders(headers: dict[str, str]) -> dict[str, str]:
    """Копия заголовков запроса с замаскированными значениями ключей доступа."""
    return {
        name: (maskSecret(value) or "") if name.lower() in SENSITIVE_HEADERS else value
        for name, value in headers.items()
    }
