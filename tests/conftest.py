from __future__ import annotations

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from redmetrics.common.config import MetricsConfig
from redmetrics.instrument import instrument


def build_app() -> FastAPI:
    app = FastAPI()

    @app.get("/api/v1/nodes/{node_id}")
    def get_node(node_id: str):
        return {"id": node_id}

    @app.get("/api/v1/nodes/{node_id}/children")
    def get_children(node_id: str):
        return []

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/echo")
    async def echo(request: Request):
        body = await request.body()
        return {"size": len(body)}

    @app.post("/created", status_code=201)
    def created():
        return {"created": True}

    @app.get("/boom")
    def boom():
        raise RuntimeError("handler failed")

    return app


@pytest.fixture
def make_client():
    built = []

    def _make(raise_server_exceptions: bool = True, **options):
        options.setdefault("collect_default_metrics", False)
        app = build_app()
        instrumentation = instrument(app, MetricsConfig(**options))
        built.append(instrumentation)
        client = TestClient(app, raise_server_exceptions=raise_server_exceptions)
        return client, instrumentation

    yield _make
    for instrumentation in built:
        instrumentation.push_scheduler.stop()
