from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from redmetrics.common.config import MetricsConfig
from redmetrics.infra.observability.metrics import MetricsRegistry
from redmetrics.infra.observability.middleware import RedMiddleware
from redmetrics.infra.observability.normalizers import PathNormalizer
from redmetrics.infra.observability.scrape import ScrapeGate, mount_scrape_route
from redmetrics.infra.push.scheduler import PushScheduler

logger = logging.getLogger("redmetrics.startup")


@dataclass
class Instrumentation:
    config: MetricsConfig
    registry: MetricsRegistry
    normalizer: PathNormalizer
    gate: ScrapeGate
    push_scheduler: PushScheduler


def instrument(app: Any, config: MetricsConfig | None = None) -> Instrumentation:
    """Wire RED metrics into ``app`` and return the components for inspection.

    Must be called before the application starts serving, since it adds a
    middleware.
    """
    config = config or MetricsConfig()
    normalizer = PathNormalizer(config.extra_masks)
    registry = MetricsRegistry(config)
    gate = ScrapeGate(registry, config.authenticate)

    if config.metrics_app is not None:
        mount_scrape_route(config.metrics_app, config.metrics_path, gate)
    app.add_middleware(
        RedMiddleware,
        registry=registry,
        normalizer=normalizer,
        scrape_path=config.metrics_path,
        normalize_status=config.normalize_status,
        transform_labels=config.transform_labels,
        gate=gate if config.metrics_app is None else None,
    )

    push_scheduler = PushScheduler(
        registry,
        gateway_url=config.pushgateway_url,
        job_name=config.pushgateway_job_name,
        interval_ms=config.push_interval_ms,
        auth=config.pushgateway_auth,
        callback=config.push_callback,
    )
    if push_scheduler.start():
        logger.info(
            "Pushgateway export enabled. [event=push_scheduled] (url=%s, job=%s, interval_ms=%s)",
            config.pushgateway_url,
            config.pushgateway_job_name,
            config.push_interval_ms,
        )

    return Instrumentation(
        config=config,
        registry=registry,
        normalizer=normalizer,
        gate=gate,
        push_scheduler=push_scheduler,
    )
