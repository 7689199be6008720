from __future__ import annotations

import gc
import logging
import math
import weakref

import pytest

from cachemeter.core.errors import InvalidTagsError, MeterTypeConflictError
from cachemeter.instrument.meters import Meter, MeterId, MeterType, TimeUnit
from cachemeter.instrument.registry import MeterRegistry, prometheus_name
from cachemeter.instrument.tags import Tags


class Source:
    def __init__(self, value: float = 0.0) -> None:
        self.value = value
        self.count = 0
        self.total_ns = 0


def test_gauge_reads_live_value_on_every_scrape(registry, collector_registry):
    source = Source(3)
    registry.gauge("queue.depth", source, lambda s: s.value, tags={"queue": "jobs"})

    assert collector_registry.get_sample_value("queue_depth", {"queue": "jobs"}) == 3.0
    source.value = 9
    assert collector_registry.get_sample_value("queue_depth", {"queue": "jobs"}) == 9.0


def test_function_counter_is_exported_with_total_suffix(registry, collector_registry):
    source = Source()
    source.count = 12
    registry.function_counter("jobs.done", source, lambda s: s.count)

    assert collector_registry.get_sample_value("jobs_done_total", {}) == 12.0


def test_function_timer_is_exported_as_summary_in_seconds(registry, collector_registry):
    source = Source()
    source.count = 4
    source.total_ns = 2_000_000
    timer = registry.function_timer(
        "jobs.latency", source, lambda s: s.count, lambda s: s.total_ns, TimeUnit.NANOSECONDS
    )

    assert collector_registry.get_sample_value("jobs_latency_seconds_count", {}) == 4.0
    assert collector_registry.get_sample_value("jobs_latency_seconds_sum", {}) == pytest.approx(0.002)
    assert timer.mean(TimeUnit.NANOSECONDS) == pytest.approx(500_000)


def test_timer_mean_is_zero_without_operations(registry):
    source = Source()
    timer = registry.function_timer(
        "jobs.latency", source, lambda s: s.count, lambda s: s.total_ns, TimeUnit.NANOSECONDS
    )

    assert timer.mean() == 0.0


def test_base_unit_is_appended_once():
    assert prometheus_name("cache.entry.memory", "bytes") == "cache_entry_memory_bytes"
    assert prometheus_name("heap_bytes", "bytes") == "heap_bytes"


def test_same_name_and_tags_returns_existing_meter(registry):
    source = Source()

    first = registry.gauge("queue.depth", source, lambda s: s.value, tags={"queue": "jobs"})
    second = registry.gauge("queue.depth", source, lambda s: -1, tags={"queue": "jobs"})
    other = registry.gauge("queue.depth", source, lambda s: s.value, tags={"queue": "mail"})

    assert second is first
    assert other is not first
    assert len(registry.find("queue.depth")) == 2


def test_tag_keys_exporting_as_the_same_label_are_rejected(registry):
    source = Source()

    with pytest.raises(InvalidTagsError, match="a_b"):
        registry.gauge("queue.depth", source, lambda s: s.value, tags={"a.b": "1", "a_b": "2"})
    assert registry.find("queue.depth") == []


def test_common_tag_colliding_with_meter_tag_label_is_rejected(collector_registry):
    registry = MeterRegistry(collector_registry, common_tags={"app.name": "catalog"}, strict_reads=False)

    with pytest.raises(InvalidTagsError):
        registry.gauge("queue.depth", Source(), lambda s: s.value, tags={"app_name": "other"})


def test_meter_base_class_cannot_be_instantiated():
    meter_id = MeterId(name="queue.depth", type=MeterType.GAUGE, tags=Tags.empty())

    with pytest.raises(TypeError):
        Meter(meter_id, Source())


def test_reusing_a_name_with_another_type_is_rejected(registry):
    source = Source()
    registry.gauge("queue.depth", source, lambda s: s.value)

    with pytest.raises(MeterTypeConflictError):
        registry.function_counter("queue.depth", source, lambda s: s.count)


def test_reclaimed_source_stops_reporting_and_is_pruned(registry, collector_registry):
    source = Source(5)
    gauge = registry.gauge("queue.depth", source, lambda s: s.value)
    assert collector_registry.get_sample_value("queue_depth", {}) == 5.0

    del source
    gc.collect()

    assert math.isnan(gauge.value())
    assert collector_registry.get_sample_value("queue_depth", {}) is None
    assert registry.find("queue.depth") == []


def test_registering_keeps_no_strong_reference(registry):
    source = Source()
    registry.gauge("queue.depth", source, lambda s: s.value)
    registry.function_timer("jobs.latency", source, lambda s: s.count, lambda s: s.total_ns, TimeUnit.NANOSECONDS)

    ref = weakref.ref(source)
    del source
    gc.collect()

    assert ref() is None


def test_failed_read_is_logged_and_skipped(registry, collector_registry, caplog):
    source = Source(1)

    def boom(_):
        raise RuntimeError("stats unavailable")

    registry.gauge("broken", source, boom)
    registry.gauge("healthy", source, lambda s: s.value)

    with caplog.at_level(logging.WARNING, logger="cachemeter.instrument.registry"):
        assert collector_registry.get_sample_value("healthy", {}) == 1.0

    assert collector_registry.get_sample_value("broken", {}) is None
    assert "Failed to read gauge broken" in caplog.text
    assert registry.find("broken")


def test_strict_reads_propagate_failures(collector_registry):
    registry = MeterRegistry(collector_registry, common_tags=(), strict_reads=True)
    source = Source()

    def boom(_):
        raise RuntimeError("stats unavailable")

    registry.gauge("broken", source, boom)

    with pytest.raises(RuntimeError, match="stats unavailable"):
        registry.scrape()


def test_common_tags_apply_to_every_meter(collector_registry):
    registry = MeterRegistry(collector_registry, common_tags={"app": "catalog"}, strict_reads=False)
    source = Source(2)

    gauge = registry.gauge("queue.depth", source, lambda s: s.value, tags={"queue": "jobs"})

    assert gauge.id.tags.as_dict() == {"app": "catalog", "queue": "jobs"}
    assert collector_registry.get_sample_value("queue_depth", {"app": "catalog", "queue": "jobs"}) == 2.0


def test_common_tags_and_strict_reads_default_from_settings(monkeypatch, collector_registry):
    monkeypatch.setenv("CACHEMETER_COMMON_TAGS", "app=catalog")
    monkeypatch.setenv("CACHEMETER_STRICT_READS", "true")

    registry = MeterRegistry(collector_registry)

    assert registry.common_tags.as_dict() == {"app": "catalog"}
    assert registry.strict_reads is True


def test_scrape_renders_text_exposition(registry):
    source = Source(7)
    registry.gauge("queue.depth", source, lambda s: s.value, tags={"queue": "jobs"}, description="Jobs waiting")

    text = registry.scrape()

    assert "# HELP queue_depth Jobs waiting" in text
    assert 'queue_depth{queue="jobs"} 7.0' in text


def test_remove_and_close_detach_meters(registry, collector_registry):
    source = Source(1)
    gauge = registry.gauge("queue.depth", source, lambda s: s.value)

    assert registry.remove(gauge) is gauge
    assert registry.remove(gauge) is None
    assert collector_registry.get_sample_value("queue_depth", {}) is None

    registry.gauge("queue.depth", source, lambda s: s.value)
    registry.close()
    assert registry.meters == []
    assert "queue_depth" not in registry.scrape()
