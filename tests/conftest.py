from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import pytest
from prometheus_client import CollectorRegistry

from cachemeter.core import settings as settings_module
from cachemeter.instrument.registry import MeterRegistry


@dataclass
class FakeNearCacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    persistence_count: int = 0


@dataclass
class FakeLocalMapStats:
    owned_entry_count: int = 0
    backup_entry_count: int = 0
    owned_entry_memory_cost: int = 0
    backup_entry_memory_cost: int = 0
    hits: int = 0
    get_operation_count: int = 0
    put_operation_count: int = 0
    remove_operation_count: int = 0
    total_get_latency: int = 0
    total_put_latency: int = 0
    total_remove_latency: int = 0
    near_cache_stats: Optional[FakeNearCacheStats] = None


@dataclass(eq=False)
class FakeMap:
    """Map handle double; ``stats`` stands in for the member's live counters."""

    name: str
    stats: FakeLocalMapStats = field(default_factory=FakeLocalMapStats)
    stats_calls: int = 0

    def get_local_map_stats(self) -> FakeLocalMapStats:
        self.stats_calls += 1
        return self.stats


@pytest.fixture(autouse=True)
def _reset_settings(monkeypatch):
    for name in ("COMMON_TAGS", "STRICT_READS"):
        monkeypatch.delenv(settings_module.ENV_PREFIX + name, raising=False)
    settings_module.get_settings.cache_clear()
    yield
    settings_module.get_settings.cache_clear()


@pytest.fixture
def collector_registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def registry(collector_registry) -> MeterRegistry:
    return MeterRegistry(collector_registry, common_tags=(), strict_reads=False)


@pytest.fixture
def make_map():
    def _make(name: str = "books", near_cache: Optional[FakeNearCacheStats] = None, **stats) -> FakeMap:
        return FakeMap(name=name, stats=FakeLocalMapStats(near_cache_stats=near_cache, **stats))

    return _make


@pytest.fixture
def near_cache_stats():
    return FakeNearCacheStats
