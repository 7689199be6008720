"""Registration skeleton shared by every cache binder.

Subclasses report the common cache statistics through the accessor methods
below. An accessor that returns ``None`` marks the statistic as unsupported
by the cache technology, and the matching meter is not registered at all,
so "zero misses" and "misses are not counted" stay distinguishable.
"""

from __future__ import annotations

import abc
import logging
import weakref
from typing import Any, Optional

from cachemeter.core.errors import MissingCacheNameError, UnreferenceableCacheError
from cachemeter.instrument.registry import MeterRegistry
from cachemeter.instrument.tags import Tags, TagsLike

logger = logging.getLogger(__name__)


class CacheMeterBinder(abc.ABC):
    def __init__(self, cache: Any, cache_name: Optional[str], tags: TagsLike = None) -> None:
        if cache_name is None or not str(cache_name).strip():
            raise MissingCacheNameError("A cache name is required to bind cache metrics")
        try:
            self._cache_ref = weakref.ref(cache)
        except TypeError as exc:
            raise UnreferenceableCacheError(
                f"Cannot instrument {type(cache).__name__!r}: it does not support weak references"
            ) from exc
        self._tags = Tags.concat(tags, "cache", str(cache_name))

    @property
    def cache(self) -> Any:
        """The instrumented cache, or ``None`` once it has been reclaimed."""

        return self._cache_ref()

    @property
    def tags_with_cache_name(self) -> Tags:
        return self._tags

    def bind_to(self, registry: MeterRegistry) -> None:
        cache = self.cache
        if cache is None:
            logger.debug("Cache %s was reclaimed before binding; nothing to register", self._tags.get("cache"))
            return
        registered = len(registry.meters)

        if self.size() is not None:
            registry.gauge(
                "cache.size",
                cache,
                lambda _: _or_zero(self.size()),
                tags=self._tags,
                description="The number of entries in this cache. This may be an approximation, "
                "depending on the type of cache.",
            )

        if self.miss_count() is not None:
            registry.function_counter(
                "cache.gets",
                cache,
                lambda _: _or_zero(self.miss_count()),
                tags=self._tags.and_("result", "miss"),
                description="The number of times cache lookup methods have returned an uncached "
                "(newly loaded) value, or null",
            )

        registry.function_counter(
            "cache.gets",
            cache,
            lambda _: self.hit_count(),
            tags=self._tags.and_("result", "hit"),
            description="The number of times cache lookup methods have returned a cached value.",
        )

        registry.function_counter(
            "cache.puts",
            cache,
            lambda _: self.put_count(),
            tags=self._tags,
            description="The number of entries added to the cache",
        )

        if self.eviction_count() is not None:
            registry.function_counter(
                "cache.evictions",
                cache,
                lambda _: _or_zero(self.eviction_count()),
                tags=self._tags,
                description="The number of entries evicted from the cache",
            )

        self.bind_implementation_specific_metrics(registry)
        logger.debug(
            "Bound %d meters for cache %s",
            len(registry.meters) - registered,
            self._tags.get("cache"),
        )

    @abc.abstractmethod
    def size(self) -> Optional[int]:
        """Number of entries, or ``None`` if the cache cannot report it."""

    @abc.abstractmethod
    def hit_count(self) -> int:
        ...

    @abc.abstractmethod
    def miss_count(self) -> Optional[int]:
        ...

    @abc.abstractmethod
    def eviction_count(self) -> Optional[int]:
        ...

    @abc.abstractmethod
    def put_count(self) -> int:
        ...

    @abc.abstractmethod
    def bind_implementation_specific_metrics(self, registry: MeterRegistry) -> None:
        """Register any meters beyond the common cache set."""


def _or_zero(value: Optional[int]) -> int:
    return 0 if value is None else value


__all__ = ["CacheMeterBinder"]
