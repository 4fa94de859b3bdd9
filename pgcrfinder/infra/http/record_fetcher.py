from __future__ import annotations

import logging
from typing import Any

from pgcrfinder.common.sanitize import truncateText
from pgcrfinder.domain.error_codes import ErrorCode
from pgcrfinder.domain.models import FetchResult, Record
from pgcrfinder.domain.ports.fetcher import RecordFetcherProtocol
from pgcrfinder.infra.http.bungie_client import ApiError, BungieApiClient
from pgcrfinder.timeUtils import parseIsoTimestamp


def parseRecord(identifier: int, document: dict[str, Any]) -> Record:
    """
    Назначение:
        Строит Record из PGCR-документа.

    Входные данные:
        document: dict
            {"Response": {"period": "<RFC3339>", "activityDetails": {"instanceId": "..."}}}

    Ошибки:
        ValueError: нет period/instanceId или period не разбирается.
    """
    response = document.get("Response")
    if not isinstance(response, dict):
        raise ValueError("missing Response object")

    period = response.get("period")
    if not isinstance(period, str):
        raise ValueError("missing Response.period")

    details = response.get("activityDetails")
    instance_id = details.get("instanceId") if isinstance(details, dict) else None
    if instance_id is None or str(instance_id) == "":
        raise ValueError("missing Response.activityDetails.instanceId")

    return Record(
        identifier=identifier,
        timestamp=parseIsoTimestamp(period),
        instance_id=str(instance_id),
        payload=document,
    )


class PgcrRecordFetcher(RecordFetcherProtocol):
    """
    Назначение/ответственность:
        Адаптер RecordFetcherProtocol поверх BungieApiClient.
        404 -> ABSENT, 200 -> FOUND, остальное -> ERROR; исключения наружу не выходят.
    """

    def __init__(self, client: BungieApiClient, logger: logging.Logger | None = None):
        self._client = client
        self._logger = logger or logging.getLogger(__name__)

    def fetch(self, identifier: int) -> FetchResult:
        try:
            document = self._client.getPgcr(identifier)
        except ApiError as err:
            error_code = self._map_error_code(err.code, err.status_code)
            self._logger.debug(
                "fetch id=%s failed code=%s", identifier, error_code, extra={"component": "api"}
            )
            msg_parts = [err.message]
            if err.body_snippet:
                msg_parts.append(err.body_snippet)
            return FetchResult.error(identifier, error_code, truncateText(" | ".join(msg_parts)))

        if document is None:
            return FetchResult.absent(identifier)

        try:
            record = parseRecord(identifier, document)
        except ValueError as exc:
            return FetchResult.error(identifier, ErrorCode.INVALID_RECORD.value, str(exc))
        return FetchResult.found(record)

    def _map_error_code(self, code: str | None, status_code: int | None) -> str:
        """
        Алгоритм:
            - Известные коды клиента проходят как есть.
            - Для HTTP_* код выбирается по статусу.
            - По умолчанию UNEXPECTED_ERROR.
        """
        if code in (ErrorCode.NETWORK_ERROR.value, ErrorCode.FETCH_TIMEOUT.value, ErrorCode.INVALID_JSON.value):
            return code
        if code and code.startswith("HTTP_"):
            return ErrorCode.from_status(status_code).value
        return ErrorCode.UNEXPECTED_ERROR.value
