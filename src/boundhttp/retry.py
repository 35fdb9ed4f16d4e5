"""Retry policy pieces: backoff strategies and response checkers.

A retry strategy is any callable mapping a 1-based attempt index to a delay in
seconds. A response checker is any callable deciding whether a response is
good enough to stop retrying.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Mapping

from .response import HttpResponse

ResponseChecker = Callable[[HttpResponse], bool]
DelayForAttempt = Callable[[int], float]


class RetryStrategyType(str, enum.Enum):
    CONSTANT = "constant"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryStrategy:
    """Backoff computed from a base delay.

    ``CONSTANT`` waits ``delay_millis`` every time, ``LINEAR`` waits
    ``delay_millis * attempt_index`` and ``EXPONENTIAL`` doubles the delay on
    every attempt starting from ``delay_millis``.
    """

    delay_millis: int = 250
    type: RetryStrategyType = RetryStrategyType.LINEAR

    def __post_init__(self) -> None:
        if isinstance(self.delay_millis, bool) or not isinstance(self.delay_millis, int):
            raise ValueError("Argument 'delay_millis' must be an integer.")
        if self.delay_millis < 0:
            raise ValueError("Argument 'delay_millis' is negative.")
        if not isinstance(self.type, RetryStrategyType):
            raise ValueError(f"Unsupported retry strategy type {self.type!r}.")

    @classmethod
    def from_config(cls, section: Mapping) -> RetryStrategy:
        """Builds a strategy from the ``request`` configuration section."""
        return cls(
            delay_millis=int(section.get("retry_delay_millis", 250)),
            type=RetryStrategyType(str(section.get("retry_strategy", "linear")).lower()),
        )

    def get_delay_time_millis(self, attempt_index: int) -> int:
        if attempt_index < 1:
            raise ValueError("Argument 'attempt_index' must be positive.")

        if self.type is RetryStrategyType.CONSTANT:
            return self.delay_millis
        if self.type is RetryStrategyType.LINEAR:
            return self.delay_millis * attempt_index
        return self.delay_millis * 2 ** (attempt_index - 1)

    def __call__(self, attempt_index: int) -> float:
        return self.get_delay_time_millis(attempt_index) / 1000.0


def accept_no_failure(response: HttpResponse) -> bool:
    """Default checker: anything that did not fail at the transport level."""
    return not response.has_failure


def reject_server_errors(response: HttpResponse) -> bool:
    return not response.has_failure and response.code < 500


def accept_codes(*codes: int) -> ResponseChecker:
    """Builds a checker accepting only the listed status codes."""
    accepted = frozenset(codes)

    def checker(response: HttpResponse) -> bool:
        return not response.has_failure and response.code in accepted

    return checker
