"""Caching of scored match results.

Exports:
- compute_fingerprint / profile_signature: request cache keys
- CacheEntry, CacheStore: stored value and store interface
- InMemoryCacheStore: process-local TTL + LRU store
- SqliteCacheStore: durable store shared across processes
"""

from jobmatch.cache.fingerprint import compute_fingerprint, profile_signature
from jobmatch.cache.repository import SqliteCacheStore
from jobmatch.cache.store import CacheEntry, CacheStore, InMemoryCacheStore

__all__ = [
    "CacheEntry",
    "CacheStore",
    "InMemoryCacheStore",
    "SqliteCacheStore",
    "compute_fingerprint",
    "profile_signature",
]
