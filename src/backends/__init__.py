"""Local in-process backends."""

from src.backends.local import (
    LocalHealthCheck,
    LocalLoadBalancer,
    LocalProvisioner,
    ReplayMetricsSource,
    StaticMetricsSource,
)

__all__ = [
    "LocalHealthCheck",
    "LocalLoadBalancer",
    "LocalProvisioner",
    "ReplayMetricsSource",
    "StaticMetricsSource",
]
