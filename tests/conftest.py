from __future__ import annotations

import threading
import time

import pytest
from prometheus_client import CollectorRegistry

from url_metrics.common.config import get_settings

SETTINGS_ENV_VARS = (
    "METRIC_NAME",
    "METRIC_MAX_LABEL_LENGTH",
    "ENABLE_METRICS",
    "METRICS_PATH",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # 避免读取工作目录中的 .env
    monkeypatch.setattr("url_metrics.common.config.ENV_FILE", tmp_path / ".env")
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


class CountingRegistry(CollectorRegistry):
    """记录 register 调用次数，并可放慢注册以放大竞争窗口。"""

    def __init__(self, delay: float = 0.0) -> None:
        super().__init__()
        self.delay = delay
        self.register_calls = 0
        self._calls_lock = threading.Lock()

    def register(self, collector) -> None:
        with self._calls_lock:
            self.register_calls += 1
        if self.delay:
            time.sleep(self.delay)
        super().register(collector)


@pytest.fixture
def counting_registry() -> CountingRegistry:
    return CountingRegistry()


@pytest.fixture
def slow_registry() -> CountingRegistry:
    return CountingRegistry(delay=0.05)


def collect_counts(registry: CollectorRegistry, metric_name: str) -> dict[tuple[str, str, str], float]:
    """返回 {(url, method, status): value}，只包含 *_total 样本。"""
    sample_name = metric_name if metric_name.endswith("_total") else metric_name + "_total"
    counts: dict[tuple[str, str, str], float] = {}
    for family in registry.collect():
        for sample in family.samples:
            if sample.name != sample_name:
                continue
            key = (sample.labels["url"], sample.labels["method"], sample.labels["status"])
            counts[key] = sample.value
    return counts


@pytest.fixture
def read_counts(registry):
    def _read(metric_name: str = "traefik_url_requests_total"):
        return collect_counts(registry, metric_name)

    return _read
