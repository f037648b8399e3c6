"""Prometheus metrics for the deep learning API services."""

from __future__ import annotations

from typing import Any

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Track created metrics to avoid duplicate registration when apps are rebuilt
_created_metrics: dict[str, Any] = {}

_LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1, 2, 4, 8, 16, 32, float("inf"))
_LOAD_BUCKETS = (1, 5, 15, 30, 60, 120, 300, 600, float("inf"))


def _get_or_create_metric(
    metric_class: type, name: str, description: str, **kwargs: Any
) -> Any:
    """Get existing metric or create new one to avoid duplicate registration."""
    if name in _created_metrics:
        return _created_metrics[name]
    metric = metric_class(name, description, **kwargs)
    _created_metrics[name] = metric
    return metric


def http_metrics() -> dict[str, Any]:
    return {
        "http_requests": _get_or_create_metric(
            Counter,
            "http_requests_total",
            "Total HTTP requests",
            labelnames=["method", "route", "status"],
        ),
        "http_request_duration": _get_or_create_metric(
            Histogram,
            "http_request_duration_seconds",
            "HTTP request latency",
            labelnames=["method", "route"],
            buckets=_LATENCY_BUCKETS,
        ),
    }


def inference_metrics() -> dict[str, Any]:
    return {
        "inference_requests": _get_or_create_metric(
            Counter,
            "inference_requests_total",
            "Total pipeline inference calls",
            labelnames=["pipeline", "status"],
        ),
        "inference_duration": _get_or_create_metric(
            Histogram,
            "inference_duration_seconds",
            "Pipeline inference latency",
            labelnames=["pipeline"],
            buckets=_LATENCY_BUCKETS,
        ),
        "pipeline_load_duration": _get_or_create_metric(
            Histogram,
            "pipeline_load_duration_seconds",
            "Time taken to load a pipeline",
            labelnames=["pipeline"],
            buckets=_LOAD_BUCKETS,
        ),
    }


def render_latest() -> tuple[bytes, str]:
    """Return the exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST


__all__ = ["http_metrics", "inference_metrics", "render_latest"]
