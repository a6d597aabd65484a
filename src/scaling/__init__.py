"""Scaling decisions: policies, governor, circuit breaker and simulation."""

from src.scaling.config import (
    AutoscalerConfig,
    GroupConfig,
    GovernorConfig,
    BreakerConfig,
    HealthCheckConfig,
    ExecutorConfig,
    SamplerConfig,
    LoopConfig,
    load_config,
    CONSERVATIVE_GOVERNOR,
    BALANCED_GOVERNOR,
    AGGRESSIVE_GOVERNOR,
)
from src.scaling.errors import (
    AutoscalerError,
    ConfigInvalid,
    SourceUnavailable,
    LaunchFailed,
    DrainTimeout,
    InvalidTransition,
)
from src.scaling.models import (
    ScalingGroup,
    MetricSample,
    CapacityDelta,
    AdmittedDelta,
    Rejected,
    RejectionReason,
    ScalingDirection,
    ScalingEvent,
)
from src.scaling.policy import (
    PolicyEvaluator,
    TargetTrackingPolicy,
    StepPolicy,
    StepAdjustment,
    ScheduledPolicy,
    AdjustmentType,
    policy_from_dict,
)
from src.scaling.governor import CooldownGovernor
from src.scaling.breaker import ScalingCircuitBreaker
from src.scaling.simulator import (
    ScalingSimulator,
    SimulationMetrics,
)

__all__ = [
    "AutoscalerConfig",
    "GroupConfig",
    "GovernorConfig",
    "BreakerConfig",
    "HealthCheckConfig",
    "ExecutorConfig",
    "SamplerConfig",
    "LoopConfig",
    "load_config",
    "CONSERVATIVE_GOVERNOR",
    "BALANCED_GOVERNOR",
    "AGGRESSIVE_GOVERNOR",
    "AutoscalerError",
    "ConfigInvalid",
    "SourceUnavailable",
    "LaunchFailed",
    "DrainTimeout",
    "InvalidTransition",
    "ScalingGroup",
    "MetricSample",
    "CapacityDelta",
    "AdmittedDelta",
    "Rejected",
    "RejectionReason",
    "ScalingDirection",
    "ScalingEvent",
    "PolicyEvaluator",
    "TargetTrackingPolicy",
    "StepPolicy",
    "StepAdjustment",
    "ScheduledPolicy",
    "AdjustmentType",
    "policy_from_dict",
    "CooldownGovernor",
    "ScalingCircuitBreaker",
    "ScalingSimulator",
    "SimulationMetrics",
]
