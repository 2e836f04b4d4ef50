from __future__ import annotations

import os
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any

from redmetrics.common.errors import ConfigurationError
from redmetrics.infra.observability.metrics import exponential_buckets

if TYPE_CHECKING:
    from starlette.requests import Request

    from redmetrics.infra.observability.middleware import ResponseInfo
    from redmetrics.infra.push.scheduler import PushResult

ENV_FILE = Path(".env")

DEFAULT_METRICS_PATH = "/metrics"
DEFAULT_PUSH_INTERVAL_MS = 60 * 1000

Authenticator = Callable[["Request"], "bool | Awaitable[bool]"]
LabelTransform = Callable[[dict[str, str], "Request", "ResponseInfo"], None]
PushCallback = Callable[["PushResult"], None]


def default_duration_buckets() -> list[float]:
    # 0.05s 到约 2.5s 的指数分布
    return exponential_buckets(0.05, 1.75, 8)


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_int(name: str, value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer") from exc


def _as_floats(name: str, value: str | None) -> list[float] | None:
    if value is None:
        return None
    try:
        return [float(item) for item in _as_list(value)]
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a comma separated list of numbers") from exc


@dataclass(frozen=True)
class PushgatewayAuth:
    username: str | None = None
    password: str | None = None

    @property
    def complete(self) -> bool:
        return bool(self.username and self.password)


@dataclass
class MetricsConfig:
    metrics_path: str = DEFAULT_METRICS_PATH
    metrics_app: Any = None
    authenticate: Authenticator | None = None
    collect_default_metrics: bool = True
    collect_gc_metrics: bool = False
    request_duration_buckets: Sequence[float] = field(
        default_factory=default_duration_buckets
    )
    request_length_buckets: Sequence[float] = field(default_factory=list)
    response_length_buckets: Sequence[float] = field(default_factory=list)
    extra_masks: Sequence[Any] = field(default_factory=list)
    custom_labels: Sequence[str] = field(default_factory=list)
    transform_labels: LabelTransform | None = None
    normalize_status: bool = True
    prefix: str = ""
    pushgateway_url: str | None = None
    pushgateway_auth: PushgatewayAuth | None = None
    pushgateway_job_name: str | None = None
    push_interval_ms: int = DEFAULT_PUSH_INTERVAL_MS
    push_callback: PushCallback | None = None

    def __post_init__(self) -> None:
        if not self.metrics_path.startswith("/"):
            raise ConfigurationError("metrics_path must start with '/'")
        if not self.request_duration_buckets:
            raise ConfigurationError("request_duration_buckets must not be empty")
        if self.push_interval_ms <= 0:
            raise ConfigurationError("push_interval_ms must be positive")
        if self.authenticate is not None and not callable(self.authenticate):
            raise ConfigurationError("authenticate must be callable")
        if self.transform_labels is not None and not callable(self.transform_labels):
            raise ConfigurationError("transform_labels must be callable")
        if isinstance(self.pushgateway_auth, Mapping):
            self.pushgateway_auth = PushgatewayAuth(
                username=self.pushgateway_auth.get("username"),
                password=self.pushgateway_auth.get("password"),
            )

    @property
    def push_interval_seconds(self) -> float:
        return self.push_interval_ms / 1000

    @classmethod
    def from_environment(cls, **overrides: Any) -> "MetricsConfig":
        """Build a config from ``.env`` and process environment variables.

        Callables (authenticator, label transform, push callback) and the
        separate metrics app cannot come from the environment; pass them as
        keyword overrides.
        """
        _load_env_file()
        values: dict[str, Any] = {
            "metrics_path": os.environ.get("METRICS_PATH", DEFAULT_METRICS_PATH),
            "collect_default_metrics": _as_bool(
                os.environ.get("METRICS_COLLECT_DEFAULT"), True
            ),
            "collect_gc_metrics": _as_bool(os.environ.get("METRICS_COLLECT_GC"), False),
            "normalize_status": _as_bool(
                os.environ.get("METRICS_NORMALIZE_STATUS"), True
            ),
            "prefix": os.environ.get("METRICS_PREFIX", ""),
            "custom_labels": _as_list(os.environ.get("METRICS_CUSTOM_LABELS")),
            "pushgateway_url": os.environ.get("PUSHGATEWAY_URL") or None,
            "pushgateway_job_name": os.environ.get("PUSHGATEWAY_JOB_NAME") or None,
            "push_interval_ms": _as_int(
                "PUSHGATEWAY_INTERVAL_MS",
                os.environ.get("PUSHGATEWAY_INTERVAL_MS"),
                DEFAULT_PUSH_INTERVAL_MS,
            ),
        }
        username = os.environ.get("PUSHGATEWAY_USERNAME")
        password = os.environ.get("PUSHGATEWAY_PASSWORD")
        if username or password:
            values["pushgateway_auth"] = PushgatewayAuth(username, password)

        for key, env_name in (
            ("request_duration_buckets", "METRICS_REQUEST_DURATION_BUCKETS"),
            ("request_length_buckets", "METRICS_REQUEST_LENGTH_BUCKETS"),
            ("response_length_buckets", "METRICS_RESPONSE_LENGTH_BUCKETS"),
        ):
            buckets = _as_floats(env_name, os.environ.get(env_name))
            if buckets is not None:
                values[key] = buckets

        values.update(overrides)
        return cls(**values)


@dataclass
class ServiceSettings:
    """Settings of the bundled sample service."""

    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    METRICS_API_KEY: str | None = None

    @classmethod
    def from_environment(cls) -> "ServiceSettings":
        _load_env_file()
        return cls(
            HOST=os.environ.get("SERVICE_HOST", cls.HOST),
            PORT=_as_int("SERVICE_PORT", os.environ.get("SERVICE_PORT"), cls.PORT),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL),
            LOG_FORMAT=os.environ.get("LOG_FORMAT", cls.LOG_FORMAT),
            METRICS_API_KEY=os.environ.get("METRICS_API_KEY") or None,
        )


@lru_cache(maxsize=1)
def get_settings() -> ServiceSettings:
    return ServiceSettings.from_environment()
