from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Record:
    """
    Назначение:
        Неизменяемая запись (PGCR), полученная успешной загрузкой идентификатора.

    Инварианты:
        - timestamp timezone-aware, сравнивается по моменту времени.
        - instance_id: внешняя ссылка, возвращаемая вызывающему.
        - payload (сырой JSON) не участвует в сравнении.
    """

    identifier: int
    timestamp: datetime
    instance_id: str
    payload: dict[str, Any] | None = field(default=None, compare=False, repr=False)


class FetchOutcome(str, Enum):
    FOUND = "found"
    ABSENT = "absent"
    ERROR = "error"


@dataclass(frozen=True)
class FetchResult:
    """
    Назначение:
        Нормализованный результат загрузки одного идентификатора.

    Контракт:
        - FOUND -> record обязателен
        - ABSENT -> record=None, error_* пусты
        - ERROR -> record=None, error_code заполнен
    """

    outcome: FetchOutcome
    identifier: int
    record: Record | None = None
    error_code: str | None = None
    error_message: str | None = None

    def __post_init__(self) -> None:
        if self.outcome is FetchOutcome.FOUND and self.record is None:
            raise ValueError("FOUND result requires a record")
        if self.outcome is FetchOutcome.ERROR and not self.error_code:
            raise ValueError("ERROR result requires error_code")

    @classmethod
    def found(cls, record: Record) -> "FetchResult":
        return cls(outcome=FetchOutcome.FOUND, identifier=record.identifier, record=record)

    @classmethod
    def absent(cls, identifier: int) -> "FetchResult":
        return cls(outcome=FetchOutcome.ABSENT, identifier=identifier)

    @classmethod
    def error(cls, identifier: int, error_code: str, error_message: str | None = None) -> "FetchResult":
        return cls(
            outcome=FetchOutcome.ERROR,
            identifier=identifier,
            error_code=error_code,
            error_message=error_message,
        )


@dataclass
class SearchStats:
    """Счётчики одного вызова resolve()."""

    probes: int = 0
    fetches: int = 0
    cache_hits: int = 0
    retries: int = 0
    absent: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class SearchResult:
    """
    Назначение:
        Терминальное состояние Found: найденная запись и признак точного совпадения.
    """

    record: Record
    exact: bool
    stats: SearchStats = field(default_factory=SearchStats, compare=False)


__all__ = ["Record", "FetchOutcome", "FetchResult", "SearchStats", "SearchResult"]
