from __future__ import annotations

from typing import ContextManager, Protocol

from pgcrfinder.domain.models import Record


class RecordCacheProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт кэша identifier -> Record на время жизни резолвера.
    Инварианты/гарантии:
        - Только добавление: put() не перезаписывает уже сохранённую запись.
        - Внутри reserve(identifier) загрузка идентификатора выполняется не более
          чем одним вызывающим одновременно.
    """

    def get(self, identifier: int) -> Record | None: ...

    def put(self, identifier: int, record: Record) -> Record: ...

    def reserve(self, identifier: int) -> ContextManager[None]: ...

    def __len__(self) -> int: ...
