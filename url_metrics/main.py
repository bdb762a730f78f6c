import logging

import uvicorn
from fastapi import FastAPI
from prometheus_client import REGISTRY, CollectorRegistry

from url_metrics.common.config import Settings, get_settings
from url_metrics.common.logging import setup_logging
from url_metrics.infra.observability.metrics import (
    URLRequestCounter,
    build_metrics_app,
)
from url_metrics.infra.observability.middleware import URLMetricsMiddleware


def _register_counter(settings: Settings, registry: CollectorRegistry) -> URLRequestCounter:
    startup_logger = logging.getLogger("url_metrics.startup")
    counter = URLRequestCounter(settings.METRIC_NAME, registry=registry)
    startup_logger.info(
        "正在注册请求计数指标。[event=metric_registration_begin] (metric=%s)",
        settings.METRIC_NAME,
    )
    result = counter.register()
    if not result.ok:
        startup_logger.error(
            "指标注册失败，请检查 METRIC_NAME 是否合法或与其他指标重名，应用启动中断。"
            " [event=metric_registration_failed] (metric=%s，error=%s)",
            settings.METRIC_NAME,
            result.error,
        )
        result.unwrap()
    startup_logger.info(
        "指标注册完成。[event=metric_registration_succeeded] (metric=%s)",
        settings.METRIC_NAME,
    )
    return counter


def create_app(
    settings: Settings | None = None,
    registry: CollectorRegistry | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    registry = registry if registry is not None else REGISTRY
    setup_logging(settings.LOG_LEVEL)
    app = FastAPI(
        title="URL Metrics",
        version="v1.0",
        description="Request counts by normalized URL, method and status",
    )

    # Metrics
    if settings.ENABLE_METRICS:
        counter = _register_counter(settings, registry)
        app.add_middleware(
            URLMetricsMiddleware,
            config=settings.to_middleware_config(),
            counter=counter,
        )
        app.mount(settings.METRICS_PATH, build_metrics_app(registry))

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


if __name__ == "__main__":
    uvicorn.run(
        "url_metrics.main:create_app", factory=True, host="0.0.0.0", port=8000
    )
