from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from .config import RequestConfiguration

DEFAULT_RATE_LIMIT_WAIT = 1.0

_RETRY_AFTER_RE = re.compile(r"retry after (\d+)", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Delay between ordinary failed attempts.

    ``attempt`` is the 1-based number of the attempt that just failed.
    """

    retries: int = 3
    delay_s: float = 1.0
    backoff: str = "constant"
    max_delay_s: float = 30.0

    @classmethod
    def from_config(cls, config: RequestConfiguration) -> RetryPolicy:
        return cls(
            retries=config.retries,
            delay_s=config.retry_delay,
            backoff=config.retry_backoff,
            max_delay_s=config.retry_delay_max,
        )

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def delay(self, attempt: int) -> float:
        if self.backoff == "exponential":
            return min(self.delay_s * (2 ** max(0, attempt - 1)), self.max_delay_s)
        return self.delay_s


def retry_after_from_payload(payload: dict[str, Any]) -> float | None:
    params = payload.get("parameters")
    if isinstance(params, dict):
        retry_after = params.get("retry_after")
        if isinstance(retry_after, (int, float)) and not isinstance(retry_after, bool):
            return float(retry_after)
    description = payload.get("description")
    if isinstance(description, str):
        return retry_after_from_description(description)
    return None


def retry_after_from_description(description: str) -> float | None:
    match = _RETRY_AFTER_RE.search(description)
    if not match:
        return None
    return float(match.group(1))
