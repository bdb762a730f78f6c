from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

DEFAULT_METRIC_NAME = "traefik_url_requests_total"
LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_optional_int(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    return int(value)


@dataclass(frozen=True)
class URLMetricsConfig:
    """中间件配置，由宿主在构造时一次性传入。"""

    metric_name: str = DEFAULT_METRIC_NAME
    # None 表示不截断标签
    max_label_length: int | None = None


def create_config() -> URLMetricsConfig:
    return URLMetricsConfig()


@dataclass
class Settings:
    METRIC_NAME: str = DEFAULT_METRIC_NAME
    METRIC_MAX_LABEL_LENGTH: int | None = None
    ENABLE_METRICS: bool = True
    METRICS_PATH: str = "/metrics"
    LOG_LEVEL: str = "INFO"

    def __post_init__(self) -> None:
        if self.METRIC_MAX_LABEL_LENGTH is not None and self.METRIC_MAX_LABEL_LENGTH <= 0:
            raise ValueError("METRIC_MAX_LABEL_LENGTH must be a positive integer.")
        if not self.METRICS_PATH.startswith("/"):
            raise ValueError("METRICS_PATH must start with '/'.")
        self.LOG_LEVEL = self.LOG_LEVEL.upper()
        if self.LOG_LEVEL not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}.")

    def to_middleware_config(self) -> URLMetricsConfig:
        return URLMetricsConfig(
            metric_name=self.METRIC_NAME,
            max_label_length=self.METRIC_MAX_LABEL_LENGTH,
        )

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            METRIC_NAME=os.environ.get("METRIC_NAME", cls.METRIC_NAME),
            METRIC_MAX_LABEL_LENGTH=_as_optional_int(
                os.environ.get("METRIC_MAX_LABEL_LENGTH")
            ),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            METRICS_PATH=os.environ.get("METRICS_PATH", cls.METRICS_PATH),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
