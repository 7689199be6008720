"""Bind cache statistics to a Prometheus-backed meter registry."""

from cachemeter.binder.base import CacheMeterBinder
from cachemeter.binder.distributed_map import DistributedMapCacheMetrics, monitor
from cachemeter.instrument.registry import MeterRegistry
from cachemeter.instrument.tags import Tag, Tags

__version__ = "0.1.0"

__all__ = [
    "CacheMeterBinder",
    "DistributedMapCacheMetrics",
    "MeterRegistry",
    "Tag",
    "Tags",
    "monitor",
]
