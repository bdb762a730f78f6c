from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from prometheus_client import REGISTRY, CollectorRegistry, Counter, make_asgi_app

logger = logging.getLogger("metrics")

METRIC_HELP = "Total number of HTTP requests by URL"
# 标签顺序固定，调用方按位置传值
LABEL_NAMES: tuple[str, ...] = ("url", "method", "status")


class MetricRegistrationError(RuntimeError):
    """Raised when the counter family cannot be registered."""

    def __init__(self, metric_name: str, cause: Exception):
        super().__init__(f"Failed to register metric {metric_name!r}: {cause}")
        self.metric_name = metric_name
        self.cause = cause


@dataclass(frozen=True)
class RegistrationResult:
    metric_name: str
    counter: Counter | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.counter is not None

    def unwrap(self) -> Counter:
        if self.counter is None:
            cause = self.error or ValueError("counter was not created")
            raise MetricRegistrationError(self.metric_name, cause) from cause
        return self.counter


class URLRequestCounter:
    """Counter family keyed by (url, method, status), registered at most once.

    ``register`` may be called from every request: the first caller creates
    the counter while holding the lock, concurrent first callers wait for it,
    and every later call returns the cached result without locking. A failed
    registration is cached as well and is never retried.
    """

    def __init__(
        self,
        metric_name: str,
        registry: CollectorRegistry = REGISTRY,
    ) -> None:
        self.metric_name = metric_name
        self.registry = registry
        self._lock = threading.Lock()
        self._result: RegistrationResult | None = None

    def register(self) -> RegistrationResult:
        result = self._result
        if result is not None:
            return result
        with self._lock:
            if self._result is None:
                self._result = self._create()
            return self._result

    def _create(self) -> RegistrationResult:
        try:
            counter = Counter(
                self.metric_name,
                METRIC_HELP,
                LABEL_NAMES,
                registry=self.registry,
            )
        except ValueError as exc:
            logger.error(
                "metric_registration_failed metric=%s error=%s",
                self.metric_name,
                exc,
                extra={"extra": {"metric": self.metric_name, "error": str(exc)}},
            )
            return RegistrationResult(metric_name=self.metric_name, error=exc)
        logger.info(
            "metric_registered metric=%s labels=%s",
            self.metric_name,
            ",".join(LABEL_NAMES),
            extra={"extra": {"metric": self.metric_name}},
        )
        return RegistrationResult(metric_name=self.metric_name, counter=counter)

    def counter(self) -> Counter:
        return self.register().unwrap()

    def increment(self, url: str, method: str, status: int | str) -> None:
        self.counter().labels(url, method, str(status)).inc()


def build_metrics_app(registry: CollectorRegistry = REGISTRY):
    """/metrics 端点 ASGI 应用"""
    return make_asgi_app(registry=registry)
