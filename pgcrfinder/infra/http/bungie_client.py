from __future__ import annotations

import logging
from typing import Any

import httpx

from pgcrfinder.common.sanitize import maskHeaders, truncateText
from pgcrfinder.domain.error_codes import ErrorCode
from pgcrfinder.errors import AppError

PGCR_PATH = "/Destiny2/Stats/PostGameCarnageReport/{identifier}/"


class ApiError(AppError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body_snippet: str | None = None,
        retryable: bool = False,
        details: dict | None = None,
        code: str | None = None,
    ):
        """
        Назначение:
            Исключение для ошибок HTTP/API уровня BungieApiClient.
        Контракт:
            - code: строковый код (HTTP_*, NETWORK_ERROR, FETCH_TIMEOUT, INVALID_JSON).
            - status_code/body_snippet используются для диагностики.
        """
        super().__init__(
            category="api",
            code=code or (f"HTTP_{status_code}" if status_code else "API_ERROR"),
            message=message,
            retryable=retryable,
            details=details or {},
        )
        self.status_code = status_code
        self.body_snippet = body_snippet


class BungieApiClient:
    def __init__(
        self,
        baseUrl: str,
        apiKey: str,
        timeoutSeconds: float = 20.0,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Назначение:
            Read-only клиент Bungie Platform API для загрузки PGCR по идентификатору.
        Контракт:
            - baseUrl, apiKey обязательны.
            - Одна попытка на вызов: повторы выполняет SearchResolver (RetryPolicy).
            - timeoutSeconds ограничивает каждый отдельный запрос.
        """
        self.baseUrl = baseUrl.rstrip("/")
        self.apiKey = apiKey
        self.timeoutSeconds = timeoutSeconds
        self.logger = logger or logging.getLogger(__name__)
        self.requests_sent = 0

        self.client = httpx.Client(
            base_url=self.baseUrl,
            timeout=timeoutSeconds,
            transport=transport,
        )

    def __enter__(self) -> "BungieApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    def _headers(self) -> dict[str, str]:
        """Заголовки аутентификации Bungie (X-API-Key)."""
        return {
            "accept": "application/json",
            "X-API-Key": self.apiKey,
        }

    def _is_retryable(self, resp: httpx.Response) -> bool:
        """429 и 5xx считаются временными."""
        if resp.status_code == 429:
            return True
        if 500 <= resp.status_code <= 599:
            return True
        return False

    def _get(self, path: str) -> httpx.Response:
        """GET без повторов; сетевые ошибки и таймауты превращаются в ApiError."""
        headers = self._headers()
        self.logger.debug(
            "GET %s headers=%s",
            path,
            maskHeaders(headers),
            extra={"component": "api"},
        )
        self.requests_sent += 1
        try:
            return self.client.get(path, headers=headers)
        except httpx.TimeoutException as exc:
            raise ApiError(
                f"Request timed out after {self.timeoutSeconds}s",
                retryable=True,
                code=ErrorCode.FETCH_TIMEOUT.value,
            ) from exc
        except httpx.TransportError as exc:
            raise ApiError(
                f"Network error: {exc}",
                retryable=True,
                code=ErrorCode.NETWORK_ERROR.value,
            ) from exc

    def getPgcr(self, identifier: int) -> dict[str, Any] | None:
        """
        Назначение:
            Загружает Post Game Carnage Report.
        Контракт:
            - 200 -> распарсенный JSON-документ.
            - 404 -> None (записи с таким идентификатором нет).
            - иначе ApiError.
        """
        resp = self._get(PGCR_PATH.format(identifier=identifier))

        if resp.status_code == 404:
            return None

        if resp.status_code != 200:
            body_snippet = truncateText(resp.text) if resp.text else None
            raise ApiError(
                f"incorrect status code received from the api. [statusCode:{resp.status_code}]",
                status_code=resp.status_code,
                body_snippet=body_snippet,
                retryable=self._is_retryable(resp),
                details={"body_snippet": body_snippet},
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise ApiError(
                "Invalid JSON response",
                status_code=resp.status_code,
                retryable=False,
                code=ErrorCode.INVALID_JSON.value,
            ) from exc
        if not isinstance(data, dict):
            raise ApiError(
                "Unexpected response format: JSON object expected",
                status_code=resp.status_code,
                retryable=False,
                code=ErrorCode.INVALID_JSON.value,
            )
        return data
