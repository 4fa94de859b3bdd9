from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from pathlib import Path

import typer
import uvicorn

from pgcrfinder.api.server import create_app
from pgcrfinder.common.sanitize import maskSecret
from pgcrfinder.config import Settings, load_settings
from pgcrfinder.domain.models import FetchOutcome
from pgcrfinder.domain.ports.cache import RecordCacheProtocol
from pgcrfinder.domain.search.cache import InMemoryRecordCache, SharedRecordCache
from pgcrfinder.domain.search.resolver import SearchResolver
from pgcrfinder.domain.search.retry import RetryPolicy
from pgcrfinder.errors import AppError, InvalidTargetError
from pgcrfinder.infra.http.bungie_client import BungieApiClient
from pgcrfinder.infra.http.record_fetcher import PgcrRecordFetcher
from pgcrfinder.loggingSetup import (
    StdStreamToLogger,
    TeeStream,
    closeCommandLogger,
    createCommandLogger,
    logEvent,
    mapLogLevel,
)
from pgcrfinder.reporter import createEmptyReport, finalizeReport, writeReportJson
from pgcrfinder.timeUtils import formatTimestamp, getDurationMs, parseTimestamp
from pgcrfinder.usecases.find_record_usecase import FindRecordUseCase

app = typer.Typer(no_args_is_help=True, add_completion=False)


def ensureDir(path: str) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def requireApi(settings: Settings) -> None:
    """
    Назначение:
        Проверяет наличие API key для команд, которым нужен доступ к Bungie API.

    Поведение:
        - Если ключа нет: exit code 2.
    """
    if not settings.api_key:
        typer.echo("ERROR: missing API settings: api_key", err=True)
        raise typer.Exit(code=2)


def printRunHeader(runId: str, command: str, settings: Settings, sources: list[str]) -> None:
    """Печатает безопасную сводку параметров запуска (без секретов)."""
    typer.echo(
        f"run_id={runId} command={command} "
        f"base_url={settings.base_url} api_key={maskSecret(settings.api_key)} "
        f"max_identifier={settings.max_identifier} retries={settings.retries} "
        f"sources={sources} log_level={settings.log_level}"
    )


def buildClient(settings: Settings, logger: logging.Logger, apiTransport=None) -> BungieApiClient:
    return BungieApiClient(
        baseUrl=settings.base_url,
        apiKey=settings.api_key or "",
        timeoutSeconds=settings.timeout_seconds,
        transport=apiTransport,
        logger=logger,
    )


def buildResolver(
    settings: Settings,
    client: BungieApiClient,
    cache: RecordCacheProtocol,
    logger: logging.Logger,
) -> SearchResolver:
    """
    Назначение:
        Собирает SearchResolver: fetcher поверх клиента, кэш, политика повторов, дедлайн.
    """
    return SearchResolver(
        fetcher=PgcrRecordFetcher(client, logger=logger),
        cache=cache,
        max_identifier=settings.max_identifier,
        retry_policy=RetryPolicy(
            retries=settings.retries,
            backoff_seconds=settings.retry_backoff_seconds,
        ),
        deadline_seconds=settings.search_deadline_seconds,
        logger=logger,
    )


def runWithReport(
    ctx: typer.Context,
    commandName: str,
    requiresApiAccess: bool,
    runner,
) -> None:
    """
    Назначение:
        Унифицированная обвязка выполнения команд:
        - создаёт логгер + файл лога
        - создаёт report.json skeleton
        - проверяет API key
        - перенаправляет stdout/stderr в лог (tee)
        - гарантирует запись отчёта в finally

    Поведение:
        - runner(logger, report) возвращает exit code; ненулевой код пробрасывается
          через typer.Exit.
    """
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    sources = ctx.obj["sources"]

    startMonotonic = time.monotonic()

    logger, logFilePath = createCommandLogger(
        commandName=commandName,
        logDir=settings.log_dir,
        runId=runId,
        logLevel=settings.log_level,
    )

    report = createEmptyReport(runId=runId, command=commandName, configSources=sources)
    report.meta.base_url = settings.base_url

    originalStdout = sys.stdout
    originalStderr = sys.stderr

    sys.stdout = TeeStream(originalStdout, StdStreamToLogger(logger, logging.INFO, runId, "stdout"))
    sys.stderr = TeeStream(originalStderr, StdStreamToLogger(logger, logging.ERROR, runId, "stderr"))

    exitCode: int | None = None

    try:
        logEvent(logger, logging.INFO, runId, "core", "Command started")
        printRunHeader(runId, commandName, settings, sources)

        if requiresApiAccess:
            try:
                requireApi(settings)
            except typer.Exit:
                logEvent(logger, logging.ERROR, runId, "config", "Missing API key")
                exitCode = 2
                return

        exitCode = runner(logger, report)

    finally:
        durationMs = getDurationMs(startMonotonic, time.monotonic())
        finalizeReport(report=report, durationMs=durationMs, logFile=logFilePath, reportDir=settings.report_dir)
        reportPath = writeReportJson(report, settings.report_dir, f"report_{commandName}_{runId}")
        logEvent(logger, logging.INFO, runId, "report", f"Report written: {reportPath}")

        sys.stdout.flush()
        sys.stderr.flush()
        sys.stdout = originalStdout
        sys.stderr = originalStderr
        closeCommandLogger(logger)

        if exitCode:
            raise typer.Exit(code=exitCode)


def runFindCommand(ctx: typer.Context, start: str | None, printRecord: bool, apiTransport=None) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        if not start:
            logEvent(logger, logging.ERROR, runId, "input", "Start time is missing")
            typer.echo("ERROR: --start is required", err=True)
            return 2
        try:
            target = parseTimestamp(start)
        except InvalidTargetError as exc:
            logEvent(logger, logging.ERROR, runId, "input", exc.message)
            typer.echo("Invalid timestamp format provided for the start argument", err=True)
            report.result.error = exc.to_dict()
            return 2

        with buildClient(settings, logger, apiTransport) as client:
            resolver = buildResolver(settings, client, InMemoryRecordCache(), logger)
            try:
                result = FindRecordUseCase(resolver).run(target, logger, runId, report)
            except AppError as exc:
                typer.echo(f"ERROR: search failed: {exc.code} {exc.message}", err=True)
                return 1

        record = result.record
        typer.echo(
            f"Found record with ID={record.instance_id}, isMatch={str(result.exact).lower()} "
            f"period={formatTimestamp(record.timestamp)}"
        )
        if printRecord and record.payload is not None:
            typer.echo(json.dumps(record.payload, ensure_ascii=False))
        return 0

    runWithReport(ctx=ctx, commandName="find", requiresApiAccess=True, runner=execute)


def runServeCommand(ctx: typer.Context, host: str | None, port: int | None, apiTransport=None) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]
    listenHost = host or settings.listen_host
    listenPort = port or settings.listen_port

    def execute(logger, report) -> int:
        cache = SharedRecordCache()
        with buildClient(settings, logger, apiTransport) as client:
            resolver = buildResolver(settings, client, cache, logger)
            api = create_app(resolver, logger=logger)
            typer.echo(f"Listening on port=:{listenPort}...")
            logEvent(logger, logging.INFO, runId, "api", f"Serving on {listenHost}:{listenPort}")
            uvicorn.run(api, host=listenHost, port=listenPort, log_level=mapLogLevel(settings.log_level))
        logEvent(logger, logging.INFO, runId, "api", f"Server stopped cached_records={len(cache)}")
        return 0

    runWithReport(ctx=ctx, commandName="serve", requiresApiAccess=True, runner=execute)


def runCheckApiCommand(ctx: typer.Context, identifier: int, apiTransport=None) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        with buildClient(settings, logger, apiTransport) as client:
            fetcher = PgcrRecordFetcher(client, logger=logger)
            start = time.monotonic()
            result = fetcher.fetch(identifier)
            latency_ms = getDurationMs(start, time.monotonic())

        report.summary.fetches = 1
        report.result.identifier = identifier
        if result.outcome is FetchOutcome.ERROR:
            logEvent(
                logger,
                logging.ERROR,
                runId,
                "api",
                f"API check failed id={identifier} code={result.error_code} msg={result.error_message}",
            )
            report.result.error = {"code": result.error_code, "message": result.error_message}
            typer.echo("ERROR: API check failed (see logs/report)", err=True)
            return 2

        if result.record is not None:
            report.result.instance_id = result.record.instance_id
            report.result.record_timestamp = formatTimestamp(result.record.timestamp)
        logEvent(logger, logging.INFO, runId, "api", f"api ok base_url={settings.base_url} latency_ms={latency_ms}")
        typer.echo(f"api ok id={identifier} outcome={result.outcome.value} latency_ms={latency_ms}")
        return 0

    runWithReport(ctx=ctx, commandName="check-api", requiresApiAccess=True, runner=execute)


@app.callback()
def main(
    ctx: typer.Context,
    config: str | None = typer.Option(None, "--config", help="Path to config.yml"),
    runId: str | None = typer.Option(None, "--run-id", help="Run identifier (UUID). If omitted, generated."),
    logLevel: str | None = typer.Option(None, "--log-level", help="Log level: ERROR|WARN|INFO|DEBUG"),
    logDir: str | None = typer.Option(None, "--log-dir", help="Directory for logs."),
    reportDir: str | None = typer.Option(None, "--report-dir", help="Directory for reports."),
    apiKey: str | None = typer.Option(None, "--api-key", help="Bungie API key (avoid; use env/file)"),
    apiKeyFile: str | None = typer.Option(None, "--api-key-file", help="Read Bungie API key from file"),
    baseUrl: str | None = typer.Option(None, "--base-url", help="Bungie Platform base URL"),
    maxIdentifier: int | None = typer.Option(None, "--max-identifier", help="Upper bound of the id space"),
    timeoutSeconds: float | None = typer.Option(None, "--timeout-seconds", help="Per-request timeout in seconds"),
    retries: int | None = typer.Option(None, "--retries", help="Retries per identifier on transient errors"),
    retryBackoffSeconds: float | None = typer.Option(None, "--retry-backoff-seconds", help="Base backoff for retries"),
    searchDeadlineSeconds: float | None = typer.Option(
        None, "--search-deadline-seconds", help="Deadline for a whole search"
    ),
):
    """
    Назначение:
        Корневой callback:
        - генерирует/принимает run_id
        - загружает настройки (CLI > ENV > config > defaults)
        - создаёт каталоги log/report
        - сохраняет всё в ctx.obj для подкоманд
    """
    if apiKeyFile and not apiKey:
        p = Path(apiKeyFile)
        if not p.exists() or not p.is_file():
            typer.echo(f"ERROR: api-key-file not found: {apiKeyFile}", err=True)
            raise typer.Exit(code=2)
        apiKey = p.read_text(encoding="utf-8").strip()

    if not runId:
        runId = str(uuid.uuid4())

    cliOverrides = {
        "api_key": apiKey,
        "base_url": baseUrl,
        "max_identifier": maxIdentifier,
        "timeout_seconds": timeoutSeconds,
        "retries": retries,
        "retry_backoff_seconds": retryBackoffSeconds,
        "search_deadline_seconds": searchDeadlineSeconds,
        "log_level": logLevel,
        "log_dir": logDir,
        "report_dir": reportDir,
    }
    try:
        loaded = load_settings(config_path=config, cli_overrides=cliOverrides)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=2)

    ensureDir(loaded.settings.log_dir)
    ensureDir(loaded.settings.report_dir)

    ctx.obj = {
        "runId": runId,
        "settings": loaded.settings,
        "sources": loaded.sources_used,
        "configPath": config,
    }


@app.command("find")
def find(
    ctx: typer.Context,
    start: str | None = typer.Option(None, "--start", help="RFC 3339 datetime (or 'now') to find a PGCR for"),
    printRecord: bool = typer.Option(False, "--print-record/--no-print-record", help="Print raw PGCR JSON"),
):
    runFindCommand(ctx, start, printRecord)


@app.command("serve")
def serve(
    ctx: typer.Context,
    host: str | None = typer.Option(None, "--host", help="Listen address"),
    port: int | None = typer.Option(None, "--port", help="Listen port"),
):
    runServeCommand(ctx, host, port)


@app.command("check-api")
def checkApi(
    ctx: typer.Context,
    identifier: int = typer.Option(1, "--identifier", help="PGCR id to probe"),
):
    runCheckApiCommand(ctx, identifier)


if __name__ == "__main__":
    app()
