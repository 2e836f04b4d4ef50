from __future__ import annotations

import inspect
import logging
from typing import Any

from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import Response

from redmetrics.infra.observability.metrics import MetricsRegistry

logger = logging.getLogger("redmetrics.scrape")


class ScrapeGate:
    def __init__(self, registry: MetricsRegistry, authenticate: Any = None) -> None:
        self.registry = registry
        self.authenticate = authenticate

    async def authorize(self, request: Request) -> bool:
        if self.authenticate is None:
            return True
        try:
            result = self.authenticate(request)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            # 认证异常与认证失败一视同仁，不向调用方暴露
            logger.debug(
                "scrape_authentication_error path=%s error=%r",
                request.url.path,
                exc,
            )
            return False
        return bool(result)

    def response(self) -> Response:
        return Response(
            content=self.registry.render(),
            headers={"Content-Type": self.registry.content_type},
        )


def mount_scrape_route(target: Any, path: str, gate: ScrapeGate) -> None:
    """Register ``GET path`` on a separate FastAPI app, APIRouter or Starlette app.

    Unauthorized callers get the same 404 the router gives for unknown paths,
    so the endpoint's existence is not revealed.
    """

    async def scrape(request: Request) -> Response:
        if not await gate.authorize(request):
            raise HTTPException(status_code=404)
        return gate.response()

    if hasattr(target, "add_api_route"):
        target.add_api_route(
            path,
            scrape,
            methods=["GET"],
            include_in_schema=False,
            response_class=Response,
        )
    else:
        target.add_route(path, scrape, methods=["GET"], include_in_schema=False)
