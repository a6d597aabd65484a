"""Core data types shared by the scaling components."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from src.scaling.errors import ConfigInvalid


class ScalingDirection(Enum):
    """Direction of a capacity change."""

    OUT = "out"
    IN = "in"


class RejectionReason(Enum):
    """Why the governor refused a delta."""

    IN_COOLDOWN = "in_cooldown"
    VELOCITY_EXCEEDED = "velocity_exceeded"


@dataclass(frozen=True)
class MetricSample:
    """A single metric value observed at a point in time."""

    name: str
    value: float
    timestamp: datetime


@dataclass(frozen=True)
class ScalingGroup:
    """Snapshot of a scaling group.

    Only the control loop produces new snapshots (via ``with_changes``);
    every other component reads one and proposes deltas as data.

    Attributes:
        name: Group name
        min_size: Lower capacity bound
        max_size: Upper capacity bound
        desired_capacity: Capacity the group is converging to
        current_capacity: Instances currently counted as in service
        last_scale_out_at: Time of the last applied scale-out
        last_scale_in_at: Time of the last applied scale-in
    """

    name: str
    min_size: int
    max_size: int
    desired_capacity: int
    current_capacity: int
    last_scale_out_at: datetime | None = None
    last_scale_in_at: datetime | None = None

    def __post_init__(self):
        if self.min_size < 0:
            raise ConfigInvalid("min_size must be >= 0")
        if self.max_size < self.min_size:
            raise ConfigInvalid("max_size must be >= min_size")
        if not self.min_size <= self.desired_capacity <= self.max_size:
            raise ConfigInvalid("desired_capacity must be within [min_size, max_size]")
        if self.current_capacity < 0:
            raise ConfigInvalid("current_capacity must be >= 0")

    def clamp(self, capacity: int) -> int:
        """Clamp a capacity into [min_size, max_size]."""
        return max(self.min_size, min(capacity, self.max_size))

    def with_changes(self, **changes) -> "ScalingGroup":
        """Return a new snapshot with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "min_size": self.min_size,
            "max_size": self.max_size,
            "desired_capacity": self.desired_capacity,
            "current_capacity": self.current_capacity,
            "last_scale_out_at": self.last_scale_out_at,
            "last_scale_in_at": self.last_scale_in_at,
        }


@dataclass(frozen=True)
class CapacityDelta:
    """Signed capacity change proposed by a policy.

    Positive scales out, negative scales in, zero holds. Cooldowns are set
    when the proposing policy defines its own.
    """

    delta: int
    trigger: str = ""
    scale_out_cooldown_seconds: float | None = None
    scale_in_cooldown_seconds: float | None = None

    @property
    def direction(self) -> ScalingDirection | None:
        if self.delta > 0:
            return ScalingDirection.OUT
        if self.delta < 0:
            return ScalingDirection.IN
        return None


@dataclass(frozen=True)
class AdmittedDelta:
    """Delta accepted by the governor, already clamped and velocity-capped."""

    delta: int
    desired_capacity: int
    trigger: str = ""
    capped: bool = False

    @property
    def direction(self) -> ScalingDirection | None:
        if self.delta > 0:
            return ScalingDirection.OUT
        if self.delta < 0:
            return ScalingDirection.IN
        return None


@dataclass(frozen=True)
class Rejected:
    """Governor refusal. Informational, not an error."""

    reason: RejectionReason
    detail: str = ""


@dataclass(frozen=True)
class ScalingEvent:
    """Append-only audit record of an applied scaling action."""

    timestamp: datetime
    direction: ScalingDirection
    magnitude: int
    trigger: str
    old_capacity: int
    new_capacity: int
    group: str = ""

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "direction": self.direction.value,
            "magnitude": self.magnitude,
            "trigger": self.trigger,
            "old_capacity": self.old_capacity,
            "new_capacity": self.new_capacity,
            "group": self.group,
        }


@dataclass
class AppliedChange:
    """What the executor actually requested for an admitted delta."""

    requested: int
    launched: list[str] = field(default_factory=list)
    terminating: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    failed_launches: int = 0
    error: Exception | None = None

    @property
    def applied(self) -> int:
        """Net capacity change that was actually set in motion."""
        return len(self.launched) - len(self.terminating) - len(self.cancelled)

    @property
    def succeeded(self) -> bool:
        return self.applied != 0 or self.requested == 0
