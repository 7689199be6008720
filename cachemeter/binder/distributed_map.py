"""Metrics for distributed maps that expose local-partition statistics.

Covers storage (owned vs backup entries and their memory cost), partition
get volume, get/put/remove latency and, when the map has one, its near cache.
All values are read from ``get_local_map_stats()`` at scrape time.

Usage:
    cache = monitor(registry, client.get_map("books"), "tier", "hot")
"""

from __future__ import annotations

from typing import Any, Optional, TypeVar

from cachemeter.binder.base import CacheMeterBinder
from cachemeter.binder.stats import DistributedMap, LocalMapStats
from cachemeter.instrument.meters import TimeUnit
from cachemeter.instrument.registry import MeterRegistry
from cachemeter.instrument.tags import Tags, TagsLike

C = TypeVar("C", bound=DistributedMap)


def monitor(registry: MeterRegistry, cache: C, *tags: Any) -> C:
    """Record metrics on a distributed map and return it unchanged.

    ``tags`` is either a single tags-like value (``Tags``, mapping, pairs) or
    an even number of key/value strings. The returned object is ``cache``
    itself; it is never wrapped or proxied.
    """

    DistributedMapCacheMetrics(cache, Tags.of(*tags)).bind_to(registry)
    return cache


class DistributedMapCacheMetrics(CacheMeterBinder):
    def __init__(self, cache: DistributedMap, tags: TagsLike = None) -> None:
        super().__init__(cache, getattr(cache, "name", None), tags)

    def _stats(self) -> LocalMapStats:
        cache = self.cache
        if cache is None:
            raise ReferenceError("The instrumented map has been garbage collected")
        return cache.get_local_map_stats()

    def size(self) -> Optional[int]:
        return self._stats().owned_entry_count

    def hit_count(self) -> int:
        """Hits against entries held in this member's partitions.

        A hit is recorded where the entry lives, so a get issued through a
        handle on another member still counts here, and a get through this
        handle may count elsewhere.
        """

        return self._stats().hits

    def miss_count(self) -> Optional[int]:
        # No native miss counter exists for these maps.
        return None

    def eviction_count(self) -> Optional[int]:
        return None

    def put_count(self) -> int:
        return self._stats().put_operation_count

    def bind_implementation_specific_metrics(self, registry: MeterRegistry) -> None:
        cache = self.cache
        if cache is None:
            return
        tags = self.tags_with_cache_name

        registry.gauge(
            "cache.entries",
            cache,
            lambda c: c.get_local_map_stats().backup_entry_count,
            tags=tags.and_("ownership", "backup"),
            description="The number of backup entries held by this member",
        )
        registry.gauge(
            "cache.entries",
            cache,
            lambda c: c.get_local_map_stats().owned_entry_count,
            tags=tags.and_("ownership", "owned"),
            description="The number of owned entries held by this member",
        )

        registry.gauge(
            "cache.entry.memory",
            cache,
            lambda c: c.get_local_map_stats().backup_entry_memory_cost,
            tags=tags.and_("ownership", "backup"),
            description="Memory cost of backup entries held by this member",
            base_unit="bytes",
        )
        registry.gauge(
            "cache.entry.memory",
            cache,
            lambda c: c.get_local_map_stats().owned_entry_memory_cost,
            tags=tags.and_("ownership", "owned"),
            description="Memory cost of owned entries held by this member",
            base_unit="bytes",
        )

        registry.function_counter(
            "cache.partition.gets",
            cache,
            lambda c: c.get_local_map_stats().get_operation_count,
            tags=tags,
            description="The total number of get operations executed against this partition",
        )

        self._bind_timings(registry, cache, tags)
        self._bind_near_cache(registry, cache, tags)

    def _bind_timings(self, registry: MeterRegistry, cache: Any, tags: Tags) -> None:
        registry.function_timer(
            "cache.gets.latency",
            cache,
            lambda c: c.get_local_map_stats().get_operation_count,
            lambda c: c.get_local_map_stats().total_get_latency,
            TimeUnit.NANOSECONDS,
            tags=tags,
            description="Cache gets",
        )
        registry.function_timer(
            "cache.puts.latency",
            cache,
            lambda c: c.get_local_map_stats().put_operation_count,
            lambda c: c.get_local_map_stats().total_put_latency,
            TimeUnit.NANOSECONDS,
            tags=tags,
            description="Cache puts",
        )
        registry.function_timer(
            "cache.removals.latency",
            cache,
            lambda c: c.get_local_map_stats().remove_operation_count,
            lambda c: c.get_local_map_stats().total_remove_latency,
            TimeUnit.NANOSECONDS,
            tags=tags,
            description="Cache removals",
        )

    def _bind_near_cache(self, registry: MeterRegistry, cache: Any, tags: Tags) -> None:
        # Checked once: a map without a near cache gets none of these meters.
        if cache.get_local_map_stats().near_cache_stats is None:
            return

        registry.gauge(
            "cache.near.requests",
            cache,
            lambda c: c.get_local_map_stats().near_cache_stats.hits,
            tags=tags.and_("result", "hit"),
            description="The number of hits (reads) of near cache entries owned by this member",
        )
        registry.gauge(
            "cache.near.requests",
            cache,
            lambda c: c.get_local_map_stats().near_cache_stats.misses,
            tags=tags.and_("result", "miss"),
            description="The number of misses (reads) of near cache entries owned by this member",
        )
        registry.gauge(
            "cache.near.evictions",
            cache,
            lambda c: c.get_local_map_stats().near_cache_stats.evictions,
            tags=tags,
            description="The number of evictions of near cache entries owned by this member",
        )
        registry.gauge(
            "cache.near.persistences",
            cache,
            lambda c: c.get_local_map_stats().near_cache_stats.persistence_count,
            tags=tags,
            description="The number of near cache key persistences (when the pre-load feature is enabled)",
        )


__all__ = ["DistributedMapCacheMetrics", "monitor"]
