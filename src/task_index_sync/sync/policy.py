from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, Literal

from ..errors import IndexWriteError

Backoff = Literal["fixed", "exponential"]


def retry_everything(exc: Exception) -> bool:
    """Default classifier: every index failure is worth another attempt."""
    return True


def http_status_classifier(exc: Exception) -> bool:
    """Treat 4xx rejections as permanent, except timeouts and rate limits."""
    if isinstance(exc, IndexWriteError) and exc.status_code is not None:
        if 400 <= exc.status_code < 500:
            return exc.status_code in (408, 429)
    return True


@dataclass
class RetryPolicy:
    """Bounded retry for index upserts.

    ``max_retries`` counts attempts after the first one, so a mutation is sent
    at most ``max_retries + 1`` times. Delays are fixed by default; the
    exponential mode keeps the same attempt limit.
    """

    max_retries: int = 3
    delay_sec: float = 2.0
    backoff: Backoff = "fixed"
    multiplier: float = 2.0
    max_delay_sec: float = 30.0
    jitter: bool = False
    classify_retryable: Callable[[Exception], bool] = field(default=retry_everything)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.delay_sec < 0:
            raise ValueError("delay_sec must be >= 0")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before retry ``retry_number`` (1-based)."""
        if self.backoff == "fixed":
            delay = self.delay_sec
        else:
            delay = min(self.delay_sec * (self.multiplier ** (retry_number - 1)), self.max_delay_sec)
        if self.jitter:
            # 50-100% of the computed delay
            delay = delay * (0.5 + random.random() / 2)
        return delay
