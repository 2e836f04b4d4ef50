from redmetrics.common.config import MetricsConfig, PushgatewayAuth
from redmetrics.common.errors import ConfigurationError, LabelMismatchError
from redmetrics.infra.observability.metrics import (
    LabelSet,
    MetricInstruments,
    MetricsRegistry,
    exponential_buckets,
)
from redmetrics.infra.observability.middleware import RedMiddleware, ResponseInfo
from redmetrics.infra.observability.normalizers import (
    PathNormalizer,
    is_valid_url,
    normalize_path,
    normalize_status_code,
)
from redmetrics.infra.observability.scrape import ScrapeGate, mount_scrape_route
from redmetrics.infra.push.scheduler import (
    PushErrorKind,
    PushResult,
    PushScheduler,
    PushState,
)
from redmetrics.instrument import Instrumentation, instrument

__all__ = [
    "ConfigurationError",
    "Instrumentation",
    "LabelMismatchError",
    "LabelSet",
    "MetricInstruments",
    "MetricsConfig",
    "MetricsRegistry",
    "PathNormalizer",
    "PushErrorKind",
    "PushResult",
    "PushScheduler",
    "PushState",
    "PushgatewayAuth",
    "RedMiddleware",
    "ResponseInfo",
    "ScrapeGate",
    "exponential_buckets",
    "instrument",
    "is_valid_url",
    "mount_scrape_route",
    "normalize_path",
    "normalize_status_code",
]
