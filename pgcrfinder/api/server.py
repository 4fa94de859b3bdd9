"""
PGCR Finder: HTTP API
=====================

GET /pgcrfind?start=<RFC3339|now>  -> exact or closest match
GET /pgcrfind?end=<RFC3339|now>    -> same search, by end time
GET /health                        -> status + cache size

Usage:
    pgcr-finder --api-key ... serve --port 9000
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import PlainTextResponse

from pgcrfinder import __version__
from pgcrfinder.domain.search.resolver import SearchResolver
from pgcrfinder.errors import (
    InvalidTargetError,
    NoRecordsAvailableError,
    SearchFailedError,
    SearchTimeoutError,
)
from pgcrfinder.timeUtils import getUtcNow, parseTimestamp


def create_app(
    resolver: SearchResolver,
    logger: logging.Logger | None = None,
    clock: Callable[[], datetime] = getUtcNow,
) -> FastAPI:
    """
    Назначение:
        Собирает FastAPI-приложение поверх готового резолвера.
    Ограничения:
        Эндпоинты синхронные и выполняются в пуле потоков, поэтому резолверу
        нужен SharedRecordCache.
    """
    log = logger or logging.getLogger("pgcrfinder.api")

    app = FastAPI(
        title="PGCR Finder API",
        version=__version__,
        description="Finds the PGCR closest to a timestamp",
    )

    @app.get("/health")
    def health_check():
        return {"status": "online", "cached_records": len(resolver.cache)}

    @app.get("/pgcrfind", response_class=PlainTextResponse)
    def find_record(
        start: str | None = Query(None, description="RFC 3339 timestamp or 'now'"),
        end: str | None = Query(None, description="RFC 3339 timestamp or 'now'"),
    ):
        raw = start or end
        if not raw:
            raise HTTPException(status_code=400, detail="start or end query parameter is required")

        try:
            target = parseTimestamp(raw, now=clock())
        except InvalidTargetError as err:
            log.warning("Error parsing target. [value:%s]", raw, extra={"component": "api"})
            raise HTTPException(status_code=400, detail=err.message) from err

        log.info("User specified parameters. [start:%s, end:%s]", start, end, extra={"component": "api"})
        try:
            result = resolver.resolve(target)
        except NoRecordsAvailableError as err:
            raise HTTPException(status_code=404, detail=err.message) from err
        except SearchTimeoutError as err:
            log.error("Search timed out: %s", err.message, extra={"component": "api"})
            raise HTTPException(status_code=504, detail=err.message) from err
        except SearchFailedError as err:
            log.error("Search failed: %s", err.message, extra={"component": "api"})
            raise HTTPException(status_code=502, detail=err.message) from err

        if result.exact:
            return f"Found exact match ID={result.record.instance_id}"
        return f"Closest match ID={result.record.instance_id}"

    return app
