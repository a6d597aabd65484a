"""Metric sampling."""

from src.metrics.sampler import MetricSampler, MetricsSource

__all__ = ["MetricSampler", "MetricsSource"]
