from __future__ import annotations

from typing import Protocol, runtime_checkable

from pgcrfinder.domain.models import FetchResult


@runtime_checkable
class RecordFetcherProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт загрузки записи по идентификатору из удалённого сервиса.
    Взаимодействия:
        Используется SearchResolver; реализации скрывают транспорт и формат API.
    Ограничения:
        Синхронный вызов, один идентификатор за вызов.
    """

    def fetch(self, identifier: int) -> FetchResult:
        """
        Контракт (вход/выход):
            - Вход: идентификатор (>= 1).
            - Выход: FetchResult c outcome FOUND / ABSENT / ERROR.
        Ошибки/исключения:
            Транспортные ошибки не пробрасываются, а возвращаются как ERROR.
        """
        ...
