"""Properties cache and in-process memo caches."""

from idscheck.cache.keys import compute_scan_key, hash_text
from idscheck.cache.memory import MemoryCache, RuleCache
from idscheck.cache.store import CacheEntry, PropertiesCache

__all__ = [
    "CacheEntry",
    "MemoryCache",
    "PropertiesCache",
    "RuleCache",
    "compute_scan_key",
    "hash_text",
]
