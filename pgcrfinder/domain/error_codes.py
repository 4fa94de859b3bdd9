from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """
    Назначение:
        Единая таксономия кодов ошибок загрузки и поиска.
    """

    NETWORK_ERROR = "NETWORK_ERROR"
    FETCH_TIMEOUT = "FETCH_TIMEOUT"
    HTTP_ERROR = "HTTP_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    INVALID_JSON = "INVALID_JSON"
    INVALID_RECORD = "INVALID_RECORD"
    INVALID_TARGET = "INVALID_TARGET"
    SEARCH_FAILED = "SEARCH_FAILED"
    NO_RECORDS_AVAILABLE = "NO_RECORDS_AVAILABLE"
    SEARCH_TIMEOUT = "SEARCH_TIMEOUT"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"

    @classmethod
    def from_status(cls, status_code: int | None) -> "ErrorCode":
        """
        Назначение:
            Подбор общего кода по HTTP-статусу (404 сюда не попадает: это ABSENT).
        """
        if status_code == 401:
            return cls.UNAUTHORIZED
        if status_code == 403:
            return cls.FORBIDDEN
        if status_code == 429:
            return cls.RATE_LIMITED
        if status_code is not None and 500 <= status_code <= 599:
            return cls.SERVER_ERROR
        return cls.HTTP_ERROR
