import logging

import uvicorn
from fastapi import FastAPI, HTTPException
from starlette.requests import Request

from redmetrics.common.config import MetricsConfig, get_settings
from redmetrics.common.logging import setup_logging
from redmetrics.instrument import instrument


def _api_key_authenticator(expected: str):
    async def authenticate(request: Request) -> bool:
        return request.headers.get("X-API-Key") == expected

    return authenticate


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    app = FastAPI(
        title="redmetrics sample service",
        version="v1.0",
        description="FastAPI service instrumented with RED metrics",
    )

    overrides = {}
    if settings.METRICS_API_KEY:
        overrides["authenticate"] = _api_key_authenticator(settings.METRICS_API_KEY)
    config = MetricsConfig.from_environment(**overrides)
    instrumentation = instrument(app, config)
    app.state.instrumentation = instrumentation

    startup_logger = logging.getLogger("redmetrics.startup")
    startup_logger.info(
        "Metrics exposed. [event=metrics_ready] (path=%s, labels=%s, push=%s)",
        config.metrics_path,
        ",".join(instrumentation.registry.label_set.names),
        instrumentation.push_scheduler.state.value,
    )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/v1/items/{item_id}")
    async def get_item(item_id: str):
        if item_id == "missing":
            raise HTTPException(status_code=404, detail="Item not found")
        return {"id": item_id}

    return app


app = create_app()

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("redmetrics.main:app", host=settings.HOST, port=settings.PORT)
