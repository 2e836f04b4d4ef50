from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from redmetrics.common.config import LabelTransform
from redmetrics.infra.observability.metrics import MetricsRegistry
from redmetrics.infra.observability.normalizers import (
    PathNormalizer,
    normalize_status_code,
)
from redmetrics.infra.observability.scrape import ScrapeGate

logger = logging.getLogger("redmetrics.metrics")


@dataclass
class ResponseInfo:
    """What the label-transform hook can see of the finished response."""

    status_code: int
    headers: Headers = field(default_factory=Headers)


def _content_length(headers: Headers) -> int | None:
    value = headers.get("content-length")
    if value is None or not value.strip().isdigit():
        return None
    return int(value)


class RedMiddleware:
    """Records request rate, errors and duration for every HTTP request.

    When ``gate`` is given the middleware also answers ``GET`` on the scrape
    path. Unauthorized scrapes fall through to the wrapped app untouched.
    """

    def __init__(
        self,
        app: ASGIApp,
        registry: MetricsRegistry,
        normalizer: PathNormalizer,
        scrape_path: str = "/metrics",
        normalize_status: bool = True,
        transform_labels: LabelTransform | None = None,
        gate: ScrapeGate | None = None,
    ) -> None:
        self.app = app
        self.registry = registry
        self.normalizer = normalizer
        self.scrape_path = scrape_path
        # scrape path 不随请求变化，只归一化一次
        self.scrape_route = normalizer.normalize(scrape_path)
        self.normalize_status = normalize_status
        self.transform_labels = transform_labels
        self.gate = gate

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        if (
            self.gate is not None
            and scope["method"] == "GET"
            and scope["path"] == self.scrape_path
            and await self.gate.authorize(request)
        ):
            response = self.gate.response()
            await response(scope, receive, send)
            return

        start = time.perf_counter()
        response_info: ResponseInfo | None = None

        async def send_wrapper(message: Message) -> None:
            nonlocal response_info
            if message["type"] == "http.response.start":
                response_info = ResponseInfo(
                    status_code=message["status"],
                    headers=Headers(raw=message.get("headers", [])),
                )
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            elapsed = time.perf_counter() - start
            try:
                self._record(request, response_info or ResponseInfo(500), elapsed)
            except Exception:
                # 保留下游原始异常，记录失败只写日志
                logger.exception(
                    "request_record_failed method=%s path=%s",
                    scope["method"],
                    scope["path"],
                )
            raise
        elapsed = time.perf_counter() - start
        self._record(request, response_info or ResponseInfo(500), elapsed)

    def _record(self, request: Request, response: ResponseInfo, elapsed: float) -> None:
        route = self.normalizer.normalize(request.scope["path"])
        if route == self.scrape_route:
            return

        if self.normalize_status:
            status = normalize_status_code(response.status_code)
        else:
            status = str(response.status_code)
        labels = self.registry.label_set.build(route, request.method, status)
        if self.transform_labels is not None:
            self.transform_labels(labels, request, response)

        self.registry.instruments.record(
            labels,
            elapsed,
            request_length=_content_length(request.headers),
            response_length=_content_length(response.headers),
        )
