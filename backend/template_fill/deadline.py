"""Per-request time budget shared by the parse, fill and render phases."""

from __future__ import annotations

import time
from typing import Callable

from .errors import DeadlineExceeded


class Deadline:
    def __init__(self, budget_ms: int, clock: Callable[[], float] = time.monotonic):
        self.budget_ms = budget_ms
        self._clock = clock
        self._expires_at = clock() + budget_ms / 1000.0

    def remaining_ms(self) -> int:
        return max(0, int((self._expires_at - self._clock()) * 1000))

    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self, stage: str) -> None:
        if self.expired():
            raise DeadlineExceeded(details=f"deadline of {self.budget_ms} ms exceeded before {stage}")
