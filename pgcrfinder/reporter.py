from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from pgcrfinder.domain.models import SearchResult
from pgcrfinder.timeUtils import formatTimestamp, getUtcNowIso


@dataclass
class ReportMeta:
    """
    Назначение:
        Метаданные отчёта запуска команды.
    """
    run_id: str
    command: str
    started_at: str
    finished_at: str | None = None
    duration_ms: int | None = None
    log_file: str | None = None
    report_dir: str | None = None
    config_sources: list[str] = field(default_factory=list)
    base_url: str | None = None
    target: str | None = None


@dataclass
class ReportSummary:
    probes: int = 0
    fetches: int = 0
    cache_hits: int = 0
    retries: int = 0
    absent: int = 0


@dataclass
class ReportResult:
    """
    Назначение:
        Итог поиска: найденная запись либо ошибка (AppError.to_dict()).
    """
    identifier: int | None = None
    instance_id: str | None = None
    record_timestamp: str | None = None
    exact: bool | None = None
    error: dict[str, Any] | None = None


@dataclass
class Report:
    meta: ReportMeta
    summary: ReportSummary
    result: ReportResult


def createEmptyReport(runId: str, command: str, configSources: list[str]) -> Report:
    """Создаёт пустой отчёт-скелет для команды."""
    return Report(
        meta=ReportMeta(
            run_id=runId,
            command=command,
            started_at=getUtcNowIso(),
            config_sources=list(configSources or []),
        ),
        summary=ReportSummary(),
        result=ReportResult(),
    )


def applySearchStats(report: Report, stats: dict[str, int]) -> None:
    """Переносит счётчики SearchStats в summary."""
    for name, value in stats.items():
        if hasattr(report.summary, name):
            setattr(report.summary, name, value)


def applySearchResult(report: Report, result: SearchResult) -> None:
    record = result.record
    report.result.identifier = record.identifier
    report.result.instance_id = record.instance_id
    report.result.record_timestamp = formatTimestamp(record.timestamp)
    report.result.exact = result.exact
    applySearchStats(report, result.stats.to_dict())


def finalizeReport(report: Report, durationMs: int, logFile: str | None, reportDir: str) -> None:
    """
    Назначение:
        Финализирует отчёт: время завершения, длительность, пути.
    """
    report.meta.finished_at = getUtcNowIso()
    report.meta.duration_ms = durationMs
    report.meta.log_file = logFile
    report.meta.report_dir = reportDir


def writeReportJson(report: Report, reportDir: str, fileBaseName: str) -> str:
    """
    Назначение:
        Записывает report.json на диск.

    Выходные данные:
        str
            Путь к файлу отчёта.
    """
    Path(reportDir).mkdir(parents=True, exist_ok=True)
    reportPath = str(Path(reportDir) / f"{fileBaseName}.json")

    with open(reportPath, "w", encoding="utf-8") as f:
        json.dump(asdict(report), f, ensure_ascii=False, indent=2)

    return reportPath
