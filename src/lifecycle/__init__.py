"""Instance lifecycle: state machine, hooks, health checks and the executor."""

from src.lifecycle.instance import Instance, InstanceState
from src.lifecycle.interfaces import (
    HealthCheck,
    HealthStatus,
    InstanceProvisioner,
    LoadBalancer,
)
from src.lifecycle.hooks import HookFailed, HookPhase, HookRegistry
from src.lifecycle.health import HealthPoller, HealthTracker
from src.lifecycle.executor import ScalingExecutor

__all__ = [
    "Instance",
    "InstanceState",
    "HealthCheck",
    "HealthStatus",
    "InstanceProvisioner",
    "LoadBalancer",
    "HookFailed",
    "HookPhase",
    "HookRegistry",
    "HealthPoller",
    "HealthTracker",
    "ScalingExecutor",
]
