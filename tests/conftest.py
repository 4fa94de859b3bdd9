from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from pgcrfinder.domain.models import FetchResult, Record

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def pgcr_time(identifier: int) -> datetime:
    """t(i) = base + i minutes"""
    return BASE_TIME + timedelta(minutes=identifier)


class StubFetcher:
    """
    ids 1..last_id -> FOUND with t(i); ids above last_id -> ABSENT.
    errors: id -> number of ERROR results returned before the id starts resolving.
    """

    def __init__(self, last_id: int = 1000, errors: dict[int, int] | None = None, delay: float = 0.0):
        self.last_id = last_id
        self.errors = dict(errors or {})
        self.delay = delay
        self.calls: list[int] = []
        self._lock = threading.Lock()

    def fetch(self, identifier: int) -> FetchResult:
        with self._lock:
            self.calls.append(identifier)
            pending_errors = self.errors.get(identifier, 0)
            if pending_errors > 0:
                self.errors[identifier] = pending_errors - 1
        if self.delay:
            time.sleep(self.delay)
        if pending_errors > 0:
            return FetchResult.error(identifier, "NETWORK_ERROR", "boom")
        if identifier > self.last_id:
            return FetchResult.absent(identifier)
        return FetchResult.found(Record(identifier, pgcr_time(identifier), f"inst-{identifier}"))


def pgcr_document(identifier: int) -> dict:
    return {
        "Response": {
            "period": pgcr_time(identifier).isoformat().replace("+00:00", "Z"),
            "activityDetails": {"instanceId": f"inst-{identifier}"},
        },
        "ErrorCode": 1,
        "ErrorStatus": "Success",
    }


def pgcr_responder(last_id: int = 1000):
    """MockTransport handler: PGCR documents for 1..last_id, 404 above."""

    def responder(request: httpx.Request) -> httpx.Response:
        identifier = int(request.url.path.rstrip("/").rsplit("/", 1)[-1])
        if identifier > last_id:
            return httpx.Response(404, json={"ErrorStatus": "DestinyPGCRNotFound"})
        return httpx.Response(200, json=pgcr_document(identifier))

    return responder


@pytest.fixture
def make_fetcher():
    return StubFetcher


@pytest.fixture
def t():
    return pgcr_time


@pytest.fixture
def make_responder():
    return pgcr_responder
