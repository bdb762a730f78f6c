import logging
import time

from prometheus_client import CollectorRegistry, REGISTRY
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from url_metrics.common.config import URLMetricsConfig, create_config
from url_metrics.infra.observability.labels import safe_label, truncate_label
from url_metrics.infra.observability.metrics import URLRequestCounter

logger = logging.getLogger("http")


class URLMetricsMiddleware(BaseHTTPMiddleware):
    """按 (url, method, status) 统计请求数。

    只在下游处理完成后读取状态码并计数，不修改请求和响应。
    下游抛出异常时不计数，异常原样向上抛出。
    """

    def __init__(
        self,
        app: ASGIApp,
        config: URLMetricsConfig | None = None,
        name: str = "url-metrics",
        counter: URLRequestCounter | None = None,
        registry: CollectorRegistry | None = None,
    ) -> None:
        super().__init__(app)
        self.name = name
        self.config = config or create_config()
        if counter is None:
            counter = URLRequestCounter(
                self.config.metric_name,
                registry=registry if registry is not None else REGISTRY,
            )
        self.counter = counter

    def derive_labels(self, request: Request, response: Response) -> tuple[str, str, str]:
        url = truncate_label(
            safe_label(request.url.path), self.config.max_label_length
        )
        return url, request.method, str(response.status_code)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # 首次请求时注册指标，之后为无锁快路径
        self.counter.register().unwrap()

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = time.perf_counter() - start
            logger.exception(
                "request_not_counted middleware=%s method=%s path=%s duration_ms=%.3f",
                self.name,
                request.method,
                request.url.path,
                round(elapsed * 1000, 3),
                extra={
                    "extra": {
                        "middleware": self.name,
                        "method": request.method,
                        "path": request.url.path,
                        "duration_ms": round(elapsed * 1000, 3),
                        "exception": repr(exc),
                    }
                },
            )
            raise

        url, method, status = self.derive_labels(request, response)
        self.counter.increment(url, method, status)

        logger.debug(
            "request_counted middleware=%s url=%s method=%s status=%s",
            self.name,
            url,
            method,
            status,
            extra={
                "extra": {
                    "middleware": self.name,
                    "metric": self.config.metric_name,
                    "url": url,
                    "method": method,
                    "status": status,
                }
            },
        )
        return response
