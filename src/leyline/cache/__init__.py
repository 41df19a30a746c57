"""Content-addressable cache.

- ``content_cache`` -- ``ContentCache``: bounded SHA-256 keyed byte store.
- ``stats``         -- ``CacheStats``: per-operation hit/miss/put counters.
"""

from .content_cache import ContentCache, hash_content, is_valid_hash
from .stats import CacheStats, Operation

__all__ = [
    "CacheStats",
    "ContentCache",
    "Operation",
    "hash_content",
    "is_valid_hash",
]
