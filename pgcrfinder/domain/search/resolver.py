from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable

from pgcrfinder.domain.models import FetchOutcome, Record, SearchResult, SearchStats
from pgcrfinder.domain.ports.cache import RecordCacheProtocol
from pgcrfinder.domain.ports.fetcher import RecordFetcherProtocol
from pgcrfinder.domain.search.cache import InMemoryRecordCache
from pgcrfinder.domain.search.retry import RetryPolicy
from pgcrfinder.errors import NoRecordsAvailableError, SearchFailedError, SearchTimeoutError

MIN_IDENTIFIER = 1
MAX_IDENTIFIER = 2 ** 63 - 1


class SearchResolver:
    """
    Назначение/ответственность:
        Бисекция по пространству идентификаторов: находит запись с timestamp,
        равным целевому, либо ближайшую достижимую по пути бисекции.

    Инварианты/гарантии:
        - Интервал поиска (bottom, top]: bottom не загружается никогда,
          top: верхняя граница, которая может быть ABSENT.
        - Каждый идентификатор загружается через fetcher не более одного раза за
          жизнь кэша (повторы при ERROR: в пределах RetryPolicy).
        - Цикл конечен: каждая итерация либо сужает интервал, либо завершает
          поиск, либо расходует попытку из ограниченного бюджета повторов.

    Ограничения:
        - "Ближайшая" запись корректна только при монотонности timestamp
          относительно идентификаторов.
        - Синхронный, один probe за раз.
    """

    def __init__(
        self,
        fetcher: RecordFetcherProtocol,
        cache: RecordCacheProtocol | None = None,
        *,
        max_identifier: int = MAX_IDENTIFIER,
        retry_policy: RetryPolicy | None = None,
        deadline_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ):
        if max_identifier < MIN_IDENTIFIER:
            raise ValueError(f"max_identifier must be >= {MIN_IDENTIFIER}")
        if max_identifier > MAX_IDENTIFIER:
            raise ValueError(f"max_identifier must be <= {MAX_IDENTIFIER}")
        if deadline_seconds is not None and deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be > 0")

        self.fetcher = fetcher
        self.cache: RecordCacheProtocol = cache if cache is not None else InMemoryRecordCache()
        self.max_identifier = max_identifier
        self.retry_policy = retry_policy or RetryPolicy()
        self.deadline_seconds = deadline_seconds
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def resolve(self, target: datetime) -> SearchResult:
        """
        Контракт (вход/выход):
            Вход: целевой момент времени (timezone-aware datetime).
            Выход: SearchResult(record, exact, stats).
        Ошибки/исключения:
            - SearchFailedError: идентификатор не загрузился после всех повторов.
            - NoRecordsAvailableError: интервал схлопнулся без единой записи.
            - SearchTimeoutError: превышен deadline_seconds.
        Алгоритм:
            - span = top - bottom; mid = bottom + max(span // 2, 1).
            - ABSENT: top = mid (разрыв считается правее валидной области);
              при span == 1 возвращается ближайшая запись ниже разрыва.
            - timestamp == target: точное совпадение.
            - timestamp < target: bottom = mid, либо конец при span == 1.
            - timestamp > target: top = mid, либо конец при span == 1.
        """
        stats = SearchStats()
        started = self._clock()
        bottom = MIN_IDENTIFIER - 1
        top = self.max_identifier
        floor_record: Record | None = None
        last_record: Record | None = None

        while True:
            span = top - bottom
            step = max(span // 2, 1)
            mid = bottom + step

            record = self._probe(mid, stats, started)

            if record is None:
                stats.absent += 1
                if span == 1:
                    closest = floor_record or last_record
                    if closest is None:
                        self._log(logging.INFO, f"no records available bottom={bottom} top={top}")
                        raise NoRecordsAvailableError(bottom, top, stats=stats.to_dict())
                    return self._finish(closest, False, stats)
                top = mid
                continue

            last_record = record
            if record.timestamp == target:
                return self._finish(record, True, stats)

            if record.timestamp < target:
                if bottom == mid or span == 1:
                    return self._finish(record, False, stats)
                bottom = mid
                floor_record = record
            else:
                if top == mid or span == 1:
                    return self._finish(record, False, stats)
                top = mid

    def _probe(self, identifier: int, stats: SearchStats, started: float) -> Record | None:
        """
        Назначение:
            Разрешает один идентификатор: кэш, иначе fetcher с ограниченными повторами.
        Выходные данные:
            Record для FOUND, None для ABSENT.
        """
        stats.probes += 1
        with self.cache.reserve(identifier):
            cached = self.cache.get(identifier)
            if cached is not None:
                stats.cache_hits += 1
                self._log(logging.DEBUG, f"id={identifier} from cache")
                return cached

            attempt = 0
            while True:
                self._check_deadline(identifier, stats, started)
                self._log(logging.DEBUG, f"loading id={identifier} attempt={attempt + 1}")
                stats.fetches += 1
                result = self.fetcher.fetch(identifier)

                if result.outcome is FetchOutcome.FOUND:
                    return self.cache.put(identifier, result.record)
                if result.outcome is FetchOutcome.ABSENT:
                    self._log(logging.DEBUG, f"id={identifier} absent")
                    return None

                self._log(
                    logging.WARNING,
                    f"error loading id={identifier} code={result.error_code} msg={result.error_message}",
                )
                if not self.retry_policy.should_retry(attempt):
                    raise SearchFailedError(
                        identifier=identifier,
                        attempts=attempt + 1,
                        last_error_code=result.error_code,
                        last_error_message=result.error_message,
                        stats=stats.to_dict(),
                    )
                stats.retries += 1
                self.retry_policy.wait(attempt)
                attempt += 1

    def _check_deadline(self, identifier: int, stats: SearchStats, started: float) -> None:
        if self.deadline_seconds is None:
            return
        if self._clock() - started >= self.deadline_seconds:
            raise SearchTimeoutError(self.deadline_seconds, identifier, stats=stats.to_dict())

    def _finish(self, record: Record, exact: bool, stats: SearchStats) -> SearchResult:
        self._log(
            logging.INFO,
            f"search finished id={record.identifier} instance_id={record.instance_id} "
            f"exact={exact} probes={stats.probes} fetches={stats.fetches}",
        )
        return SearchResult(record=record, exact=exact, stats=stats)

    def _log(self, level: int, message: str) -> None:
        self._logger.log(level, message, extra={"component": "search"})
