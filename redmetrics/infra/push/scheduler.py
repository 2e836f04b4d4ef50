from __future__ import annotations

import atexit
import enum
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import requests
from prometheus_client import pushadd_to_gateway

from redmetrics.common.config import (
    DEFAULT_PUSH_INTERVAL_MS,
    PushCallback,
    PushgatewayAuth,
)
from redmetrics.infra.observability.metrics import MetricsRegistry
from redmetrics.infra.observability.normalizers import is_valid_url
from redmetrics.infra.push.client import (
    KEEP_ALIVE_SECONDS,
    PUSH_TIMEOUT_SECONDS,
    SessionHandler,
    build_push_session,
)

logger = logging.getLogger("redmetrics.push")


class PushState(str, enum.Enum):
    DISABLED = "disabled"
    SCHEDULED = "scheduled"
    PUSHING = "pushing"
    STOPPED = "stopped"


class PushErrorKind(str, enum.Enum):
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    HTTP = "http"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PushResult:
    ok: bool
    url: str
    job_name: str
    duration_seconds: float
    status_code: int | None = None
    body: str | None = None
    error_kind: PushErrorKind | None = None
    error: BaseException | None = None


def _classify(exc: BaseException) -> PushErrorKind:
    # ConnectTimeout 同时是 ConnectionError，先判断超时
    if isinstance(exc, requests.Timeout):
        return PushErrorKind.TIMEOUT
    if isinstance(exc, requests.ConnectionError):
        return PushErrorKind.CONNECTION
    if isinstance(exc, requests.HTTPError):
        return PushErrorKind.HTTP
    return PushErrorKind.UNKNOWN


def log_push_result(result: PushResult) -> None:
    payload = {
        "url": result.url,
        "job": result.job_name,
        "status": result.status_code,
        "duration_ms": round(result.duration_seconds * 1000, 3),
    }
    if result.ok:
        logger.info(
            "metrics_pushed url=%s job=%s status=%s",
            result.url,
            result.job_name,
            result.status_code,
            extra={"extra": payload},
        )
        return
    payload["error_kind"] = result.error_kind.value if result.error_kind else None
    payload["error"] = repr(result.error)
    logger.error(
        "metrics_push_failed url=%s job=%s status=%s error_kind=%s error=%r",
        result.url,
        result.job_name,
        result.status_code,
        payload["error_kind"],
        result.error,
        extra={"extra": payload},
    )


class PushScheduler:
    """Pushes the registry to a Pushgateway on a fixed interval.

    The push runs on a daemon thread so a slow gateway never blocks request
    handling. A failed tick is reported and the next one fires regardless;
    there are no retries and no queued pushes.
    """

    def __init__(
        self,
        registry: MetricsRegistry,
        gateway_url: str | None,
        job_name: str | None,
        interval_ms: int = DEFAULT_PUSH_INTERVAL_MS,
        auth: PushgatewayAuth | None = None,
        callback: PushCallback | None = None,
        session_factory: Callable[[PushgatewayAuth | None], Any] = build_push_session,
    ) -> None:
        self.registry = registry
        self.gateway_url = gateway_url
        self.job_name = job_name
        self.interval_seconds = interval_ms / 1000
        self.auth = auth
        self.callback = callback if callback is not None else log_push_result
        self.session_factory = session_factory
        self.state = PushState.DISABLED
        self._session: Any = None
        self._last_sent: float | None = None
        self._thread: threading.Thread | None = None
        self._stopped = threading.Event()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.gateway_url and self.job_name and is_valid_url(self.gateway_url))

    def start(self) -> bool:
        with self._lock:
            if self._stopped.is_set() or not self.enabled:
                return False
            if self._thread is not None:
                return True
            try:
                self._session = self.session_factory(self.auth)
            except Exception:
                logger.exception(
                    "pushgateway_setup_failed url=%s job=%s",
                    self.gateway_url,
                    self.job_name,
                )
                return False
            self._thread = threading.Thread(
                target=self._run, name="redmetrics-push", daemon=True
            )
            self.state = PushState.SCHEDULED
            self._thread.start()
            atexit.register(self.stop)
            return True

    def stop(self, timeout: float | None = None) -> None:
        self._stopped.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        if self._session is not None:
            self._session.close()
            self._session = None
        if thread is not None:
            atexit.unregister(self.stop)
        self.state = PushState.STOPPED

    def _run(self) -> None:
        # 固定节拍：推送耗时不计入间隔，错过的 tick 直接跳过，不排队补推
        next_at = time.monotonic() + self.interval_seconds
        while not self._stopped.wait(max(0.0, next_at - time.monotonic())):
            self.push_once()
            next_at = self._next_deadline(next_at, time.monotonic())

    def _next_deadline(self, previous: float, now: float) -> float:
        next_at = previous + self.interval_seconds
        if next_at <= now:
            missed = (now - next_at) // self.interval_seconds + 1
            next_at += missed * self.interval_seconds
        return next_at

    def _expire_idle_connections(self) -> None:
        if (
            self._last_sent is not None
            and time.monotonic() - self._last_sent > KEEP_ALIVE_SECONDS
        ):
            self._session.close()

    def push_once(self) -> PushResult:
        if self._session is None:
            raise RuntimeError("push scheduler has not been started")
        self._expire_idle_connections()
        handler = SessionHandler(self._session)
        self.state = PushState.PUSHING
        start = time.perf_counter()
        try:
            pushadd_to_gateway(
                self.gateway_url,
                job=self.job_name,
                registry=self.registry.registry,
                timeout=PUSH_TIMEOUT_SECONDS,
                handler=handler,
            )
        except Exception as exc:
            result = self._result(handler, start, error=exc)
        else:
            result = self._result(handler, start)
        self._last_sent = time.monotonic()
        self._deliver(result)
        if self.state is PushState.PUSHING:
            self.state = PushState.SCHEDULED
        return result

    def _result(
        self,
        handler: SessionHandler,
        start: float,
        error: BaseException | None = None,
    ) -> PushResult:
        response = handler.last_response
        return PushResult(
            ok=error is None,
            url=self.gateway_url or "",
            job_name=self.job_name or "",
            duration_seconds=time.perf_counter() - start,
            status_code=getattr(response, "status_code", None),
            body=getattr(response, "text", None),
            error_kind=_classify(error) if error is not None else None,
            error=error,
        )

    def _deliver(self, result: PushResult) -> None:
        try:
            self.callback(result)
        except Exception:
            logger.exception(
                "push_callback_failed url=%s job=%s", self.gateway_url, self.job_name
            )
