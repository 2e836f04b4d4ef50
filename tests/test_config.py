from __future__ import annotations

import os

import pytest

from redmetrics.common import config as config_module
from redmetrics.common.config import MetricsConfig, PushgatewayAuth, get_settings
from redmetrics.common.errors import ConfigurationError

ENV_NAMES = [
    "METRICS_PATH",
    "METRICS_COLLECT_DEFAULT",
    "METRICS_COLLECT_GC",
    "METRICS_NORMALIZE_STATUS",
    "METRICS_PREFIX",
    "METRICS_CUSTOM_LABELS",
    "METRICS_REQUEST_DURATION_BUCKETS",
    "METRICS_REQUEST_LENGTH_BUCKETS",
    "METRICS_RESPONSE_LENGTH_BUCKETS",
    "PUSHGATEWAY_URL",
    "PUSHGATEWAY_USERNAME",
    "PUSHGATEWAY_PASSWORD",
    "PUSHGATEWAY_JOB_NAME",
    "PUSHGATEWAY_INTERVAL_MS",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_module, "ENV_FILE", tmp_path / ".env")


def test_defaults():
    config = MetricsConfig()
    assert config.metrics_path == "/metrics"
    assert config.collect_default_metrics is True
    assert config.collect_gc_metrics is False
    assert config.normalize_status is True
    assert len(config.request_duration_buckets) == 8
    assert config.request_length_buckets == []
    assert config.push_interval_ms == 60_000
    assert config.push_interval_seconds == 60
    assert config.pushgateway_url is None


def test_from_environment(monkeypatch):
    monkeypatch.setenv("METRICS_PATH", "/internal/metrics")
    monkeypatch.setenv("METRICS_COLLECT_DEFAULT", "false")
    monkeypatch.setenv("METRICS_NORMALIZE_STATUS", "no")
    monkeypatch.setenv("METRICS_PREFIX", "svc_")
    monkeypatch.setenv("METRICS_CUSTOM_LABELS", "tenant, region")
    monkeypatch.setenv("METRICS_REQUEST_LENGTH_BUCKETS", "100,1000")
    monkeypatch.setenv("PUSHGATEWAY_URL", "http://gw:9091")
    monkeypatch.setenv("PUSHGATEWAY_JOB_NAME", "svc")
    monkeypatch.setenv("PUSHGATEWAY_USERNAME", "u")
    monkeypatch.setenv("PUSHGATEWAY_PASSWORD", "p")
    monkeypatch.setenv("PUSHGATEWAY_INTERVAL_MS", "15000")

    config = MetricsConfig.from_environment()
    assert config.metrics_path == "/internal/metrics"
    assert config.collect_default_metrics is False
    assert config.normalize_status is False
    assert config.prefix == "svc_"
    assert config.custom_labels == ["tenant", "region"]
    assert config.request_length_buckets == [100.0, 1000.0]
    assert config.pushgateway_url == "http://gw:9091"
    assert config.pushgateway_job_name == "svc"
    assert config.pushgateway_auth == PushgatewayAuth("u", "p")
    assert config.push_interval_ms == 15000


def test_env_file_is_read(tmp_path):
    (tmp_path / ".env").write_text(
        "# comment\nMETRICS_PREFIX='fromfile_'\nPUSHGATEWAY_JOB_NAME=\"batch\"\n",
        encoding="utf-8",
    )
    try:
        config = MetricsConfig.from_environment()
    finally:
        os.environ.pop("METRICS_PREFIX", None)
        os.environ.pop("PUSHGATEWAY_JOB_NAME", None)
    assert config.prefix == "fromfile_"
    assert config.pushgateway_job_name == "batch"


def test_overrides_take_precedence(monkeypatch):
    monkeypatch.setenv("METRICS_PATH", "/env")

    def authenticate(request):
        return True

    config = MetricsConfig.from_environment(metrics_path="/override", authenticate=authenticate)
    assert config.metrics_path == "/override"
    assert config.authenticate is authenticate


def test_auth_mapping_is_coerced():
    config = MetricsConfig(pushgateway_auth={"username": "u", "password": "p"})
    assert config.pushgateway_auth == PushgatewayAuth("u", "p")
    assert config.pushgateway_auth.complete


@pytest.mark.parametrize(
    "kwargs",
    [
        {"metrics_path": "metrics"},
        {"request_duration_buckets": []},
        {"push_interval_ms": 0},
        {"authenticate": "not callable"},
        {"transform_labels": 42},
    ],
)
def test_invalid_options(kwargs):
    with pytest.raises(ConfigurationError):
        MetricsConfig(**kwargs)


def test_bad_bucket_list(monkeypatch):
    monkeypatch.setenv("METRICS_REQUEST_DURATION_BUCKETS", "0.1,fast")
    with pytest.raises(ConfigurationError):
        MetricsConfig.from_environment()


def test_service_settings(monkeypatch):
    monkeypatch.setenv("SERVICE_PORT", "9000")
    monkeypatch.setenv("LOG_FORMAT", "plain")
    monkeypatch.setenv("METRICS_API_KEY", "k")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.PORT == 9000
        assert settings.LOG_FORMAT == "plain"
        assert settings.METRICS_API_KEY == "k"
    finally:
        get_settings.cache_clear()


@pytest.mark.parametrize("value", ["soon", "1.5", ""])
def test_non_integer_push_interval_names_the_variable(monkeypatch, value):
    monkeypatch.setenv("PUSHGATEWAY_INTERVAL_MS", value)
    with pytest.raises(ConfigurationError, match="PUSHGATEWAY_INTERVAL_MS"):
        MetricsConfig.from_environment()


def test_non_integer_service_port(monkeypatch):
    monkeypatch.setenv("SERVICE_PORT", "http")
    with pytest.raises(ConfigurationError, match="SERVICE_PORT"):
        config_module.ServiceSettings.from_environment()
