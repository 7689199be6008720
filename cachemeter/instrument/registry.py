"""Meter registry exported through ``prometheus_client``.

Meters are stored by (name, tags) and rendered by a single custom collector,
so every value is pulled from the live source objects at scrape time. Names
follow the usual dotted convention (``cache.gets.latency``) and are mapped to
Prometheus names on export:

- dots become underscores, the base unit is appended (``cache_entry_memory_bytes``)
- counters are exposed with a ``_total`` sample
- function timers become summaries in seconds (``_count`` / ``_sum``)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from threading import Lock
from typing import Any, Optional

from prometheus_client import REGISTRY, CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, SummaryMetricFamily
from prometheus_client.metrics_core import Metric

from cachemeter.core.errors import InvalidTagsError, MeterTypeConflictError
from cachemeter.instrument.meters import (
    FunctionCounter,
    FunctionTimer,
    Gauge,
    Meter,
    MeterId,
    MeterType,
    TimeUnit,
    TimerSnapshot,
    ValueFunction,
)
from cachemeter.instrument.tags import Tags, TagsLike

logger = logging.getLogger(__name__)

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")
_INVALID_LABEL_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def prometheus_name(name: str, base_unit: Optional[str] = None) -> str:
    converted = _INVALID_NAME_CHARS.sub("_", name)
    if converted[:1].isdigit():
        converted = "m_" + converted
    if base_unit and not converted.endswith("_" + base_unit):
        converted = f"{converted}_{base_unit}"
    return converted


def prometheus_label(key: str) -> str:
    converted = _INVALID_LABEL_CHARS.sub("_", key)
    if converted[:1].isdigit():
        converted = "m_" + converted
    return converted


class MeterRegistry:
    """Store meters and expose them to a Prometheus ``CollectorRegistry``.

    Args:
        collector_registry: Target registry; the process-wide default when omitted.
        common_tags: Tags merged under every meter's own tags.
        strict_reads: Re-raise failed reads out of the scrape instead of
            logging and skipping the meter.
        settings: Source for the two options above when they are not given.
    """

    def __init__(
        self,
        collector_registry: CollectorRegistry | None = None,
        *,
        common_tags: TagsLike = None,
        strict_reads: bool | None = None,
        settings=None,
    ) -> None:
        if settings is None and (common_tags is None or strict_reads is None):
            from cachemeter.core.settings import get_settings

            settings = get_settings()
        if common_tags is None:
            common_tags = settings.common_tags
        if strict_reads is None:
            strict_reads = bool(settings.strict_reads)

        self.common_tags = Tags.of(common_tags)
        self.strict_reads = strict_reads
        self._lock = Lock()
        self._meters: dict[tuple[str, Tags], Meter] = {}
        self._collector_registry = collector_registry if collector_registry is not None else REGISTRY
        self._collector_registry.register(self)

    @property
    def collector_registry(self) -> CollectorRegistry:
        return self._collector_registry

    @property
    def meters(self) -> list[Meter]:
        with self._lock:
            return list(self._meters.values())

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def gauge(
        self,
        name: str,
        obj: Any,
        value_function: ValueFunction,
        *,
        tags: TagsLike = None,
        description: str | None = None,
        base_unit: str | None = None,
    ) -> Gauge:
        meter_id = self._meter_id(name, MeterType.GAUGE, tags, base_unit, description)
        return self._register(meter_id, lambda: Gauge(meter_id, obj, value_function))

    def function_counter(
        self,
        name: str,
        obj: Any,
        count_function: ValueFunction,
        *,
        tags: TagsLike = None,
        description: str | None = None,
        base_unit: str | None = None,
    ) -> FunctionCounter:
        meter_id = self._meter_id(name, MeterType.COUNTER, tags, base_unit, description)
        return self._register(meter_id, lambda: FunctionCounter(meter_id, obj, count_function))

    def function_timer(
        self,
        name: str,
        obj: Any,
        count_function: ValueFunction,
        total_time_function: ValueFunction,
        total_time_unit: TimeUnit,
        *,
        tags: TagsLike = None,
        description: str | None = None,
    ) -> FunctionTimer:
        meter_id = self._meter_id(name, MeterType.TIMER, tags, "seconds", description)
        return self._register(
            meter_id,
            lambda: FunctionTimer(meter_id, obj, count_function, total_time_function, total_time_unit),
        )

    def _meter_id(
        self,
        name: str,
        meter_type: MeterType,
        tags: TagsLike,
        base_unit: str | None,
        description: str | None,
    ) -> MeterId:
        merged = self.common_tags.and_(Tags.of(tags))
        labels: dict[str, str] = {}
        for tag in merged:
            label = prometheus_label(tag.key)
            if label in labels:
                raise InvalidTagsError(
                    f"Tag keys {labels[label]!r} and {tag.key!r} on meter {name!r} "
                    f"both export as label {label!r}"
                )
            labels[label] = tag.key
        return MeterId(
            name=name,
            type=meter_type,
            tags=merged,
            base_unit=base_unit,
            description=description,
        )

    def _register(self, meter_id: MeterId, factory: Callable[[], Meter]) -> Any:
        with self._lock:
            for existing in self._meters.values():
                if existing.id.name == meter_id.name and existing.id.type is not meter_id.type:
                    raise MeterTypeConflictError(
                        f"Meter {meter_id.name!r} is already registered as a {existing.id.type.value}, "
                        f"cannot register it as a {meter_id.type.value}"
                    )
            existing = self._meters.get(meter_id.key)
            if existing is not None and existing.is_live:
                return existing
            meter = factory()
            self._meters[meter_id.key] = meter
        logger.debug("Registered %s %s %r", meter_id.type.value, meter_id.name, meter_id.tags)
        return meter

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find(self, name: str, **tags: str) -> list[Meter]:
        """Return meters named ``name`` whose tags include all of ``tags``."""

        found = []
        for meter in self.meters:
            if meter.id.name != name:
                continue
            meter_tags = meter.id.tags.as_dict()
            if all(meter_tags.get(key) == value for key, value in tags.items()):
                found.append(meter)
        return found

    def remove(self, meter: Meter) -> Meter | None:
        with self._lock:
            current = self._meters.get(meter.id.key)
            if current is not meter:
                return None
            return self._meters.pop(meter.id.key)

    def clear(self) -> None:
        with self._lock:
            self._meters.clear()

    def close(self) -> None:
        """Detach from the collector registry and drop every meter."""

        self._collector_registry.unregister(self)
        self.clear()

    # ------------------------------------------------------------------
    # prometheus_client collector protocol
    # ------------------------------------------------------------------

    def describe(self) -> Iterable[Metric]:
        # Meters come and go after registration; an empty description keeps
        # the collector registry from sampling caches at register time.
        return []

    def collect(self) -> Iterable[Metric]:
        families: dict[str, Metric] = {}
        dead: list[Meter] = []
        for meter in self.meters:
            try:
                reading = meter.sample()
            except Exception:
                if self.strict_reads:
                    raise
                logger.warning(
                    "Failed to read %s %s %r; omitting it from this scrape",
                    meter.id.type.value,
                    meter.id.name,
                    meter.id.tags,
                    exc_info=True,
                )
                continue
            if reading is None:
                dead.append(meter)
                continue
            self._add_sample(families, meter.id, reading)

        for meter in dead:
            if self.remove(meter) is not None:
                logger.debug("Pruned %s %r: source object was reclaimed", meter.id.name, meter.id.tags)

        yield from families.values()

    def _add_sample(self, families: dict[str, Metric], meter_id: MeterId, reading: Any) -> None:
        name = prometheus_name(meter_id.name, meter_id.base_unit)
        labels = {prometheus_label(tag.key): tag.value for tag in meter_id.tags}
        family = families.get(name)
        if family is None:
            family = _new_family(name, meter_id)
            families[name] = family

        if meter_id.type is MeterType.GAUGE:
            family.add_sample(family.name, labels, reading)
        elif meter_id.type is MeterType.COUNTER:
            family.add_sample(family.name + "_total", labels, reading)
        else:
            snapshot: TimerSnapshot = reading
            family.add_sample(family.name + "_count", labels, snapshot.count)
            family.add_sample(
                family.name + "_sum",
                labels,
                snapshot.unit.convert(snapshot.total_time, TimeUnit.SECONDS),
            )

    def scrape(self) -> str:
        """Render the target collector registry in Prometheus text format."""

        return generate_latest(self._collector_registry).decode("utf-8")


def _new_family(name: str, meter_id: MeterId) -> Metric:
    documentation = meter_id.description or meter_id.name
    unit = meter_id.base_unit or ""
    if meter_id.type is MeterType.GAUGE:
        return GaugeMetricFamily(name, documentation, unit=unit)
    if meter_id.type is MeterType.COUNTER:
        return CounterMetricFamily(name, documentation, unit=unit)
    return SummaryMetricFamily(name, documentation, unit=unit)


__all__ = ["MeterRegistry", "prometheus_label", "prometheus_name"]
