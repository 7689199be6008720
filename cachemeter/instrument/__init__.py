from cachemeter.instrument.meters import FunctionCounter, FunctionTimer, Gauge, Meter, MeterId, MeterType, TimeUnit
from cachemeter.instrument.registry import MeterRegistry
from cachemeter.instrument.tags import Tag, Tags

__all__ = [
    "FunctionCounter",
    "FunctionTimer",
    "Gauge",
    "Meter",
    "MeterId",
    "MeterRegistry",
    "MeterType",
    "Tag",
    "Tags",
    "TimeUnit",
]
