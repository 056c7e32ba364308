from __future__ import annotations

import os
import resource
import sys
from collections.abc import Callable

from .errors import MemoryLimitError

_STATM_PATH = "/proc/self/statm"


def current_memory_usage() -> int:
    """Resident set size of this process in bytes.

    Reads ``/proc/self/statm`` where available and falls back to the peak RSS
    reported by ``getrusage`` elsewhere.
    """
    try:
        with open(_STATM_PATH, encoding="ascii") as handle:
            resident_pages = int(handle.read().split()[1])
        return resident_pages * os.sysconf("SC_PAGE_SIZE")
    except (OSError, ValueError, IndexError):
        pass
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is in bytes on macOS and kilobytes on Linux.
    return peak if sys.platform == "darwin" else peak * 1024


class MemoryGuard:
    def __init__(
        self,
        limit: int | None,
        *,
        measure: Callable[[], int] = current_memory_usage,
    ) -> None:
        self._limit = limit
        self._measure = measure

    @property
    def limit(self) -> int | None:
        return self._limit

    def check(self) -> None:
        if self._limit is None:
            return
        usage = self._measure()
        if usage > self._limit:
            raise MemoryLimitError(usage, self._limit)
