from .base import DEFAULT_TTL, UpdateStorage
from .memory import MemoryUpdateStorage
from .redis import RedisUpdateStorage
from .sqlite import SqliteUpdateStorage

__all__ = [
    "DEFAULT_TTL",
    "MemoryUpdateStorage",
    "RedisUpdateStorage",
    "SqliteUpdateStorage",
    "UpdateStorage",
]
