"""Rate-limit aware wrapper around mutating Plane calls."""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .client import (
    PlaneAuthError,
    PlaneError,
    PlaneHTTPError,
    PlaneNetworkError,
    PlaneRateLimitError,
    PlaneResponseError,
    PlaneValidationError,
)

MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 5.0
RETRY_AFTER_BUFFER = 1.0
PACING_DELAY = 0.5


def error_kind(exc: BaseException) -> str:
    if isinstance(exc, PlaneRateLimitError):
        return "rate_limited"
    if isinstance(exc, PlaneAuthError):
        return "auth"
    if isinstance(exc, PlaneValidationError):
        return "validation"
    if isinstance(exc, PlaneNetworkError):
        return "network"
    if isinstance(exc, PlaneResponseError):
        return "invalid_response"
    if isinstance(exc, PlaneHTTPError):
        return f"http_{exc.status_code}"
    if isinstance(exc, PlaneError):
        return "error"
    return "unexpected"


@dataclass
class MutationResult:
    ok: bool
    value: Any = None
    error_kind: Optional[str] = None
    error: Optional[Exception] = None
    attempts: int = 0


class RetryingMutator:
    """Runs one mutating call at a time.

    A 429 response is retried up to ``max_attempts`` total attempts, waiting
    the server's Retry-After (or ``default_delay``) plus ``buffer`` seconds.
    Every other error, client or not, is terminal and returned as a failed
    result. Each call is followed by ``pacing_delay`` seconds of sleep,
    whatever its result.
    """

    def __init__(
        self,
        max_attempts: int = MAX_ATTEMPTS,
        default_delay: float = DEFAULT_RETRY_DELAY,
        buffer: float = RETRY_AFTER_BUFFER,
        pacing_delay: float = PACING_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.default_delay = default_delay
        self.buffer = buffer
        self.pacing_delay = pacing_delay
        self.sleep = sleep

    def wait_time(self, exc: PlaneRateLimitError) -> float:
        if exc.retry_after is not None:
            return exc.retry_after + self.buffer
        return self.default_delay + self.buffer

    def _attempt(self, desc: str, func: Callable[[], Any]) -> MutationResult:
        attempt = 0
        while True:
            attempt += 1
            try:
                return MutationResult(ok=True, value=func(), attempts=attempt)
            except PlaneRateLimitError as exc:
                if attempt >= self.max_attempts:
                    print(
                        f"[FAIL] Max attempts ({self.max_attempts}) reached for {desc} after rate limit.",
                        file=sys.stderr,
                    )
                    return MutationResult(
                        ok=False, error_kind=error_kind(exc), error=exc, attempts=attempt
                    )
                wait = self.wait_time(exc)
                hint = "Retry-After" if exc.retry_after is not None else "default delay"
                print(
                    f"Rate limit hit for {desc}; waiting {wait:g}s ({hint}) "
                    f"before attempt {attempt + 1}/{self.max_attempts}.",
                    file=sys.stderr,
                )
                self.sleep(wait)
            except PlaneError as exc:
                print(f"[FAIL] {desc}: {exc}", file=sys.stderr)
                return MutationResult(
                    ok=False, error_kind=error_kind(exc), error=exc, attempts=attempt
                )
            except Exception as exc:  # noqa: BLE001 - one bad call must not stop the batch.
                print(f"[FAIL] {desc}: unexpected error: {exc!r}", file=sys.stderr)
                return MutationResult(
                    ok=False, error_kind=error_kind(exc), error=exc, attempts=attempt
                )

    def mutate(self, desc: str, func: Callable[[], Any]) -> MutationResult:
        try:
            return self._attempt(desc, func)
        finally:
            if self.pacing_delay > 0:
                self.sleep(self.pacing_delay)
