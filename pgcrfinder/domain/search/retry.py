from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass(frozen=True)
class RetryPolicy:
    """
    Назначение:
        Ограниченные повторы загрузки идентификатора с экспоненциальной задержкой.

    Контракт:
        - retries: число повторов после первой попытки (0 = без повторов).
        - delay(attempt) = backoff_seconds * 2**attempt, не больше max_backoff_seconds.
    """

    retries: int = 3
    backoff_seconds: float = 0.5
    max_backoff_seconds: float = 30.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be >= 0")

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.retries

    def delay(self, attempt: int) -> float:
        return min(self.backoff_seconds * (2 ** attempt), self.max_backoff_seconds)

    def wait(self, attempt: int) -> None:
        delay = self.delay(attempt)
        if delay > 0:
            self.sleep(delay)
