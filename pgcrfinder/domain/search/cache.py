from __future__ import annotations

import threading
from contextlib import contextmanager, nullcontext
from typing import ContextManager, Iterator

from pgcrfinder.domain.models import Record


class InMemoryRecordCache:
    """
    Назначение/ответственность:
        Кэш identifier -> Record для одного логического поиска за раз (CLI).
    Ограничения:
        - Не потокобезопасен; для конкурентных resolve() используйте SharedRecordCache.
        - Неограничен по размеру, живёт столько же, сколько резолвер.
    """

    def __init__(self) -> None:
        self._records: dict[int, Record] = {}

    def get(self, identifier: int) -> Record | None:
        return self._records.get(identifier)

    def put(self, identifier: int, record: Record) -> Record:
        """Сохраняет запись, если её ещё нет; возвращает запись из кэша."""
        return self._records.setdefault(identifier, record)

    def reserve(self, identifier: int) -> ContextManager[None]:
        return nullcontext()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._records


class SharedRecordCache(InMemoryRecordCache):
    """
    Назначение/ответственность:
        Потокобезопасный кэш для HTTP-сервиса, где resolve() выполняются параллельно.
    Инварианты/гарантии:
        - Для каждого идентификатора одновременно выполняется не более одной загрузки:
          reserve(identifier) держит отдельный lock на идентификатор, остальные
          вызывающие ждут и затем читают запись из кэша.
    """

    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self._inflight: dict[int, threading.Lock] = {}

    def get(self, identifier: int) -> Record | None:
        with self._lock:
            return self._records.get(identifier)

    def put(self, identifier: int, record: Record) -> Record:
        with self._lock:
            return self._records.setdefault(identifier, record)

    @contextmanager
    def reserve(self, identifier: int) -> Iterator[None]:
        with self._lock:
            slot = self._inflight.setdefault(identifier, threading.Lock())
        with slot:
            yield
        with self._lock:
            # lock больше не нужен, когда запись уже в кэше
            if identifier in self._records and not slot.locked():
                self._inflight.pop(identifier, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._records
