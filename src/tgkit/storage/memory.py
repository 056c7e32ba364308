from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable

from ..errors import ConfigError
from .base import DEFAULT_TTL


class MemoryUpdateStorage:
    """Process-local store with oldest-first eviction once ``max_size`` is hit.

    Eviction can drop an id before its TTL runs out.
    """

    def __init__(
        self,
        max_size: int = 1000,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ConfigError("Invalid `max_size`; expected at least 1.")
        self._max_size = max_size
        self._clock = clock
        self._expires: OrderedDict[str, float] = OrderedDict()

    def __len__(self) -> int:
        return len(self._expires)

    def has(self, update_id: str) -> bool:
        expires_at = self._expires.get(update_id)
        if expires_at is None:
            return False
        if expires_at <= self._clock():
            del self._expires[update_id]
            return False
        return True

    def mark_as_processed(self, update_id: str, ttl: float = DEFAULT_TTL) -> None:
        self._expires.pop(update_id, None)
        self._expires[update_id] = self._clock() + ttl
        while len(self._expires) > self._max_size:
            self._expires.popitem(last=False)
