"""Metrics module for Prometheus monitoring."""
from .collector import MetricsCollector, get_metrics

__all__ = ["MetricsCollector", "get_metrics"]
