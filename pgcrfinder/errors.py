from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from pgcrfinder.domain.error_codes import ErrorCode


@dataclass
class AppError(Exception):
    """
    Унифицированная ошибка приложения.
    """

    category: str
    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details or {},
        }


class InvalidTargetError(AppError):
    """
    Назначение:
        Целевой timestamp не удалось разобрать (RFC 3339 / "now").
    Контракт:
        - Выбрасывается внешним слоем (CLI/HTTP) до вызова резолвера.
    """

    def __init__(self, value: str | None, reason: str):
        super().__init__(
            category="input",
            code=ErrorCode.INVALID_TARGET.value,
            message=f"Invalid target timestamp {value!r}: {reason}",
            retryable=False,
            details={"value": value},
        )
        self.value = value


class SearchFailedError(AppError):
    """
    Назначение:
        Терминальное состояние Failed: идентификатор не удалось загрузить
        за отведённое число повторов.
    """

    def __init__(
        self,
        identifier: int,
        attempts: int,
        last_error_code: str | None,
        last_error_message: str | None = None,
        stats: dict[str, Any] | None = None,
    ):
        super().__init__(
            category="search",
            code=ErrorCode.SEARCH_FAILED.value,
            message=f"Failed to load id={identifier} after {attempts} attempt(s): {last_error_code}",
            retryable=True,
            details={
                "identifier": identifier,
                "attempts": attempts,
                "last_error_code": last_error_code,
                "last_error_message": last_error_message,
                "stats": stats or {},
            },
        )
        self.identifier = identifier
        self.attempts = attempts
        self.last_error_code = last_error_code


class NoRecordsAvailableError(AppError):
    """Интервал схлопнулся, а ни одной записи так и не найдено."""

    def __init__(self, bottom: int, top: int, stats: dict[str, Any] | None = None):
        super().__init__(
            category="search",
            code=ErrorCode.NO_RECORDS_AVAILABLE.value,
            message=f"No records available in id range ({bottom}, {top}]",
            retryable=False,
            details={"bottom": bottom, "top": top, "stats": stats or {}},
        )


class SearchTimeoutError(AppError):
    """Превышен общий дедлайн одного resolve()."""

    def __init__(self, deadline_seconds: float, identifier: int, stats: dict[str, Any] | None = None):
        super().__init__(
            category="search",
            code=ErrorCode.SEARCH_TIMEOUT.value,
            message=f"Search deadline of {deadline_seconds}s exceeded before probing id={identifier}",
            retryable=True,
            details={"deadline_seconds": deadline_seconds, "identifier": identifier, "stats": stats or {}},
        )
        self.deadline_seconds = deadline_seconds


__all__ = [
    "AppError",
    "InvalidTargetError",
    "SearchFailedError",
    "NoRecordsAvailableError",
    "SearchTimeoutError",
]
