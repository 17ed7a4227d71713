# relaymap/datasources/retry.py
from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TypeVar

from relaymap.errors import FetchError
from relaymap.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class FetchState(Enum):
    FETCHING = "fetching"
    RETRYING = "retrying"
    EXHAUSTED = "exhausted"
    DONE = "done"


class TransientError(Exception):
    """A failure worth retrying: timeout, connection reset, 5xx, 429."""

    def __init__(self, reason: str, retry_after: Optional[float] = None):
        super().__init__(reason)
        self.reason = reason
        self.retry_after = retry_after


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    backoff_base: float = 2.0
    max_backoff: float = 60.0

    def backoff(self, attempt: int) -> float:
        """Delay after the `attempt`-th failed attempt (1-based)."""
        return min(self.backoff_base * (2 ** (attempt - 1)), self.max_backoff)

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        if retry_after is not None and retry_after >= 0:
            return min(retry_after, self.max_backoff)
        return self.backoff(attempt)


class RequestMachine:
    """
    Drives one logical request through FETCHING -> (RETRYING -> FETCHING)* ->
    DONE | EXHAUSTED.

    `request` raises TransientError for retryable failures. Anything else
    (FetchError for permanent failures included) propagates untouched.
    """

    def __init__(
            self,
            policy: RetryPolicy,
            sleep: Callable[[float], None] = time.sleep,
            label: str = "request",
    ):
        self.policy = policy
        self.sleep = sleep
        self.label = label
        self.state = FetchState.FETCHING
        self.attempt = 0
        self.delay = 0.0
        self.last_error: Optional[TransientError] = None

    def on_failure(self, error: TransientError) -> FetchState:
        self.last_error = error
        if self.attempt >= self.policy.max_attempts:
            self.state = FetchState.EXHAUSTED
        else:
            self.delay = self.policy.delay_for(self.attempt, error.retry_after)
            self.state = FetchState.RETRYING
        return self.state

    def run(self, request: Callable[[], T]) -> T:
        while True:
            if self.state is FetchState.FETCHING:
                self.attempt += 1
                try:
                    result = request()
                except TransientError as e:
                    self.on_failure(e)
                    log.warning(
                        "%s failed (attempt %d/%d): %s",
                        self.label, self.attempt, self.policy.max_attempts, e.reason,
                    )
                    continue
                self.state = FetchState.DONE
                return result

            if self.state is FetchState.RETRYING:
                log.info("Retrying %s in %.1fs", self.label, self.delay)
                self.sleep(self.delay)
                self.state = FetchState.FETCHING
                continue

            if self.state is FetchState.EXHAUSTED:
                reason = self.last_error.reason if self.last_error else "unknown error"
                raise FetchError(
                    f"{self.label} failed after {self.attempt} attempts: {reason}"
                )

            raise RuntimeError(f"RequestMachine already finished ({self.state.value})")
