from __future__ import annotations

import gc
import logging
import platform
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Final

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

from redmetrics.common.errors import ConfigurationError, LabelMismatchError

if TYPE_CHECKING:
    from redmetrics.common.config import MetricsConfig

logger = logging.getLogger("redmetrics.metrics")

MANDATORY_LABELS: Final[tuple[str, ...]] = ("route", "method", "status")

_LABEL_NAME_RE: Final = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

# GCCollector 依赖 gc.get_stats，仅 CPython 可用；启动时检查一次
GC_METRICS_AVAILABLE: Final[bool] = (
    platform.python_implementation() == "CPython" and hasattr(gc, "get_stats")
)


def exponential_buckets(start: float, factor: float, count: int) -> list[float]:
    if start <= 0:
        raise ValueError("start must be positive")
    if factor <= 1:
        raise ValueError("factor must be greater than 1")
    if count < 1:
        raise ValueError("count must be at least 1")
    return [start * factor**index for index in range(count)]


class LabelSet:
    """Canonical, ordered label names shared by every instrument."""

    def __init__(self, custom_labels: Iterable[str] = ()) -> None:
        names = tuple(dict.fromkeys((*MANDATORY_LABELS, *custom_labels)))
        for name in names:
            if not isinstance(name, str) or not _LABEL_NAME_RE.match(name):
                raise ConfigurationError(f"invalid label name: {name!r}")
            if name.startswith("__"):
                raise ConfigurationError(f"label name {name!r} is reserved")
        self.names: tuple[str, ...] = names
        self.custom: tuple[str, ...] = names[len(MANDATORY_LABELS) :]

    def build(self, route: str, method: str, status: str) -> dict[str, str]:
        labels = {"route": route, "method": method, "status": status}
        for name in self.custom:
            labels[name] = ""
        return labels

    def validate(self, labels: Mapping[str, str]) -> None:
        if len(labels) != len(self.names) or set(labels) != set(self.names):
            raise LabelMismatchError(self.names, tuple(labels))


class MetricInstruments:
    def __init__(
        self,
        label_set: LabelSet,
        registry: CollectorRegistry,
        prefix: str = "",
        duration_buckets: Sequence[float] = (),
        request_length_buckets: Sequence[float] = (),
        response_length_buckets: Sequence[float] = (),
    ) -> None:
        if not duration_buckets:
            duration_buckets = exponential_buckets(0.05, 1.75, 8)
        self.label_set = label_set
        names = label_set.names
        try:
            self.requests = Counter(
                f"{prefix}http_requests_total",
                "Counter for total requests received",
                names,
                registry=registry,
            )
            self.duration = Histogram(
                f"{prefix}http_request_duration_seconds",
                "Duration of HTTP requests in seconds",
                names,
                buckets=sorted(duration_buckets),
                registry=registry,
            )
            self.request_length: Histogram | None = None
            if request_length_buckets:
                self.request_length = Histogram(
                    f"{prefix}http_request_length_bytes",
                    "Content-Length of HTTP request",
                    names,
                    buckets=sorted(request_length_buckets),
                    registry=registry,
                )
            self.response_length: Histogram | None = None
            if response_length_buckets:
                self.response_length = Histogram(
                    f"{prefix}http_response_length_bytes",
                    "Content-Length of HTTP response",
                    names,
                    buckets=sorted(response_length_buckets),
                    registry=registry,
                )
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    def record(
        self,
        labels: Mapping[str, str],
        duration_seconds: float,
        request_length: float | None = None,
        response_length: float | None = None,
    ) -> None:
        self.label_set.validate(labels)
        self.requests.labels(**labels).inc()
        self.duration.labels(**labels).observe(duration_seconds)
        if self.request_length is not None and request_length is not None:
            self.request_length.labels(**labels).observe(request_length)
        if self.response_length is not None and response_length is not None:
            self.response_length.labels(**labels).observe(response_length)


class MetricsRegistry:
    """The one registry a process instruments into, scrapes and pushes from."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, config: "MetricsConfig") -> None:
        self.registry = CollectorRegistry()
        self.label_set = LabelSet(config.custom_labels)
        self.instruments = MetricInstruments(
            self.label_set,
            self.registry,
            prefix=config.prefix,
            duration_buckets=config.request_duration_buckets,
            request_length_buckets=config.request_length_buckets,
            response_length_buckets=config.response_length_buckets,
        )
        if config.collect_default_metrics:
            ProcessCollector(namespace=config.prefix.rstrip("_"), registry=self.registry)
            PlatformCollector(registry=self.registry)
        if config.collect_gc_metrics:
            if GC_METRICS_AVAILABLE:
                GCCollector(registry=self.registry)
            else:
                logger.debug(
                    "gc_metrics_unavailable implementation=%s",
                    platform.python_implementation(),
                )

    def render(self) -> bytes:
        return generate_latest(self.registry)
