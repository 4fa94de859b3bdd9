from __future__ import annotations

import logging
from datetime import datetime

from pgcrfinder.domain.models import SearchResult
from pgcrfinder.domain.search.resolver import SearchResolver
from pgcrfinder.errors import AppError
from pgcrfinder.loggingSetup import logEvent
from pgcrfinder.reporter import Report, applySearchResult, applySearchStats
from pgcrfinder.timeUtils import formatTimestamp


class FindRecordUseCase:
    """
    Назначение/ответственность:
        Use-case поиска записи по целевому timestamp: запуск резолвера,
        журналирование и заполнение отчёта.
    Взаимодействия:
        Ошибки поиска (AppError) пишутся в отчёт и пробрасываются вызывающему.
    """

    def __init__(self, resolver: SearchResolver) -> None:
        self.resolver = resolver

    def run(self, target: datetime, logger: logging.Logger, run_id: str, report: Report) -> SearchResult:
        report.meta.target = formatTimestamp(target)
        logEvent(logger, logging.INFO, run_id, "search", f"Search started target={report.meta.target}")

        try:
            result = self.resolver.resolve(target)
        except AppError as err:
            stats = err.details.get("stats") if isinstance(err.details, dict) else None
            if stats:
                applySearchStats(report, stats)
            report.result.error = err.to_dict()
            logEvent(logger, logging.ERROR, run_id, "search", f"Search failed code={err.code} msg={err.message}")
            raise

        applySearchResult(report, result)
        logEvent(
            logger,
            logging.INFO,
            run_id,
            "search",
            f"Search finished instance_id={result.record.instance_id} exact={result.exact} "
            f"fetches={result.stats.fetches} cache_hits={result.stats.cache_hits}",
        )
        return result
