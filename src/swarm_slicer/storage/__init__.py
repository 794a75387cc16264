"""Result persistence package."""

from .base import ResultStore
from .checksum import compute_checksum, verify_checksum
from .memory_store import InMemoryResultStore
from .redis_store import RedisResultStore

__all__ = [
    "ResultStore",
    "InMemoryResultStore",
    "RedisResultStore",
    "compute_checksum",
    "verify_checksum",
]
