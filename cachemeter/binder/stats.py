"""Structural types for a distributed map's native local statistics.

Any cache client whose map handles expose ``name`` and
``get_local_map_stats()`` with these attributes can be instrumented. Counts
are plain integers and latencies are cumulative nanoseconds.
"""

from __future__ import annotations

from typing import Optional, Protocol


class NearCacheStats(Protocol):
    hits: int
    misses: int
    evictions: int
    persistence_count: int


class LocalMapStats(Protocol):
    owned_entry_count: int
    backup_entry_count: int
    owned_entry_memory_cost: int
    backup_entry_memory_cost: int
    hits: int
    get_operation_count: int
    put_operation_count: int
    remove_operation_count: int
    total_get_latency: int
    total_put_latency: int
    total_remove_latency: int
    near_cache_stats: Optional[NearCacheStats]


class DistributedMap(Protocol):
    name: str

    def get_local_map_stats(self) -> LocalMapStats: ...


__all__ = ["DistributedMap", "LocalMapStats", "NearCacheStats"]
