"""Meter descriptors sampled lazily from a weakly-referenced source object.

A meter never stores values. Each read dereferences the source object and
calls the value function with it, so the function itself must not capture
the object. Once the source has been reclaimed the meter stops reporting.
"""

from __future__ import annotations

import abc
import math
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from cachemeter.instrument.tags import Tags

T = TypeVar("T")

ValueFunction = Callable[[Any], float]


class MeterType(str, Enum):
    GAUGE = "gauge"
    COUNTER = "counter"
    TIMER = "timer"


class TimeUnit(Enum):
    """Time units expressed as their length in seconds."""

    NANOSECONDS = 1e-9
    MICROSECONDS = 1e-6
    MILLISECONDS = 1e-3
    SECONDS = 1.0

    def convert(self, amount: float, target: TimeUnit) -> float:
        if self is target:
            return float(amount)
        return float(amount) * self.value / target.value


@dataclass(frozen=True)
class MeterId:
    name: str
    type: MeterType
    tags: Tags
    base_unit: Optional[str] = None
    description: Optional[str] = None

    @property
    def key(self) -> tuple[str, Tags]:
        return self.name, self.tags


@dataclass(frozen=True)
class TimerSnapshot:
    count: float
    total_time: float
    unit: TimeUnit

    @property
    def mean(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total_time / self.count


class Meter(abc.ABC, Generic[T]):
    def __init__(self, meter_id: MeterId, obj: Any) -> None:
        self.id = meter_id
        self._ref = weakref.ref(obj)

    @property
    def is_live(self) -> bool:
        return self._ref() is not None

    def sample(self) -> T | None:
        """Read the meter, or return ``None`` once the source is gone.

        Exceptions raised by the value function are not handled here.
        """

        obj = self._ref()
        if obj is None:
            return None
        return self._read(obj)

    @abc.abstractmethod
    def _read(self, obj: Any) -> T:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id.name!r}, {self.id.tags!r})"


class Gauge(Meter[float]):
    def __init__(self, meter_id: MeterId, obj: Any, value_function: ValueFunction) -> None:
        super().__init__(meter_id, obj)
        self._value_function = value_function

    def _read(self, obj: Any) -> float:
        return float(self._value_function(obj))

    def value(self) -> float:
        reading = self.sample()
        return math.nan if reading is None else reading


class FunctionCounter(Meter[float]):
    def __init__(self, meter_id: MeterId, obj: Any, count_function: ValueFunction) -> None:
        super().__init__(meter_id, obj)
        self._count_function = count_function

    def _read(self, obj: Any) -> float:
        return float(self._count_function(obj))

    def count(self) -> float:
        reading = self.sample()
        return math.nan if reading is None else reading


class FunctionTimer(Meter[TimerSnapshot]):
    """Count and cumulative time read from two accumulator functions.

    Mean latency is derived from the pair at read time rather than tracked.
    """

    def __init__(
        self,
        meter_id: MeterId,
        obj: Any,
        count_function: ValueFunction,
        total_time_function: ValueFunction,
        total_time_unit: TimeUnit,
    ) -> None:
        super().__init__(meter_id, obj)
        self._count_function = count_function
        self._total_time_function = total_time_function
        self.total_time_unit = total_time_unit

    def _read(self, obj: Any) -> TimerSnapshot:
        return TimerSnapshot(
            count=float(self._count_function(obj)),
            total_time=float(self._total_time_function(obj)),
            unit=self.total_time_unit,
        )

    def count(self) -> float:
        reading = self.sample()
        return math.nan if reading is None else reading.count

    def total_time(self, unit: TimeUnit = TimeUnit.SECONDS) -> float:
        reading = self.sample()
        if reading is None:
            return math.nan
        return reading.unit.convert(reading.total_time, unit)

    def mean(self, unit: TimeUnit = TimeUnit.SECONDS) -> float:
        reading = self.sample()
        if reading is None:
            return math.nan
        return reading.unit.convert(reading.mean, unit)


__all__ = [
    "FunctionCounter",
    "FunctionTimer",
    "Gauge",
    "Meter",
    "MeterId",
    "MeterType",
    "TimeUnit",
    "TimerSnapshot",
]
