from __future__ import annotations

from typing import Protocol, runtime_checkable

DEFAULT_TTL = 3600.0


@runtime_checkable
class UpdateStorage(Protocol):
    """Set of update ids that have already been dispatched."""

    def has(self, update_id: str) -> bool: ...

    def mark_as_processed(self, update_id: str, ttl: float = DEFAULT_TTL) -> None: ...
