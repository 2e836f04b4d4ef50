from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from redmetrics.common.config import MetricsConfig
from redmetrics.common.errors import ConfigurationError, LabelMismatchError
from redmetrics.infra.observability.metrics import (
    GC_METRICS_AVAILABLE,
    LabelSet,
    MetricInstruments,
    MetricsRegistry,
    exponential_buckets,
)


def test_label_names_start_with_mandatory_and_dedupe():
    label_set = LabelSet(["tenant", "route", "region", "tenant"])
    assert label_set.names == ("route", "method", "status", "tenant", "region")
    assert label_set.custom == ("tenant", "region")


def test_invalid_label_name_rejected():
    with pytest.raises(ConfigurationError):
        LabelSet(["bad-name"])
    with pytest.raises(ConfigurationError):
        LabelSet(["__reserved"])


def test_build_fills_custom_labels():
    label_set = LabelSet(["tenant"])
    assert label_set.build("/a/#val", "GET", "2xx") == {
        "route": "/a/#val",
        "method": "GET",
        "status": "2xx",
        "tenant": "",
    }


def test_exponential_buckets_match_default_span():
    buckets = exponential_buckets(0.05, 1.75, 8)
    assert len(buckets) == 8
    assert buckets[0] == pytest.approx(0.05)
    assert buckets[-1] == pytest.approx(2.513, rel=1e-3)


@pytest.mark.parametrize("args", [(0, 2, 3), (1, 1, 3), (1, 2, 0)])
def test_exponential_buckets_reject_bad_input(args):
    with pytest.raises(ValueError):
        exponential_buckets(*args)


def test_record_rejects_unknown_label_names():
    registry = CollectorRegistry()
    instruments = MetricInstruments(LabelSet(), registry)
    labels = {"route": "/x", "method": "GET", "status": "2xx", "tenant": "a"}
    with pytest.raises(LabelMismatchError):
        instruments.record(labels, 0.1)
    with pytest.raises(LabelMismatchError):
        instruments.record({"route": "/x", "method": "GET"}, 0.1)
    assert registry.get_sample_value(
        "http_requests_total", {"route": "/x", "method": "GET", "status": "2xx"}
    ) is None


def test_length_histograms_only_exist_with_buckets():
    registry = CollectorRegistry()
    instruments = MetricInstruments(LabelSet(), registry)
    assert instruments.request_length is None
    assert instruments.response_length is None

    registry = CollectorRegistry()
    instruments = MetricInstruments(
        LabelSet(),
        registry,
        request_length_buckets=[100, 1000],
        response_length_buckets=[100, 1000],
    )
    labels = {"route": "/x", "method": "POST", "status": "2xx"}
    instruments.record(labels, 0.2, request_length=120, response_length=20)
    assert registry.get_sample_value("http_request_length_bytes_sum", labels) == 120
    assert registry.get_sample_value("http_response_length_bytes_sum", labels) == 20
    assert registry.get_sample_value("http_request_duration_seconds_count", labels) == 1


def test_prefix_applies_to_all_instruments():
    registry = MetricsRegistry(
        MetricsConfig(prefix="myapp_", collect_default_metrics=False)
    )
    labels = {"route": "/", "method": "GET", "status": "2xx"}
    registry.instruments.record(labels, 0.01)
    assert registry.registry.get_sample_value("myapp_http_requests_total", labels) == 1
    assert b"myapp_http_request_duration_seconds_bucket" in registry.render()


def test_label_reserved_by_histogram_is_configuration_error():
    with pytest.raises(ConfigurationError):
        MetricsRegistry(MetricsConfig(custom_labels=["le"], collect_default_metrics=False))


def test_registries_are_independent():
    first = MetricsRegistry(MetricsConfig(collect_default_metrics=False))
    second = MetricsRegistry(MetricsConfig(collect_default_metrics=False))
    labels = {"route": "/", "method": "GET", "status": "2xx"}
    first.instruments.record(labels, 0.01)
    assert first.registry.get_sample_value("http_requests_total", labels) == 1
    assert second.registry.get_sample_value("http_requests_total", labels) is None


def test_default_process_metrics_are_collected():
    registry = MetricsRegistry(MetricsConfig())
    assert b"python_info" in registry.render()


@pytest.mark.skipif(not GC_METRICS_AVAILABLE, reason="gc.get_stats unavailable")
def test_gc_metrics_when_enabled():
    registry = MetricsRegistry(
        MetricsConfig(collect_default_metrics=False, collect_gc_metrics=True)
    )
    assert b"python_gc_objects_collected_total" in registry.render()


def test_gc_metrics_off_by_default():
    registry = MetricsRegistry(MetricsConfig(collect_default_metrics=False))
    assert b"python_gc_" not in registry.render()
