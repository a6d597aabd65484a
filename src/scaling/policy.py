"""Scaling policies and their evaluation.

Three policy kinds are supported:
    - Target tracking: keep a metric near a target by sizing proportionally
    - Step: map metric ranges to fixed adjustments
    - Scheduled: pin capacity into a range on a cron schedule

When several policies apply in one evaluation, the largest proposal wins.
A scale-out from any policy therefore dominates, and a scale-in only
happens when every applicable policy asks for one (the smallest wins).
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Union

from croniter import croniter

from src.scaling.errors import ConfigInvalid, SourceUnavailable
from src.scaling.models import CapacityDelta, MetricSample, ScalingGroup

logger = logging.getLogger(__name__)

# Target tracking ratios closer than this to a whole number are rounded to it
_ROUNDING_EPSILON = 1e-9


class PolicyKind(str, Enum):
    """Available policy kinds."""

    TARGET_TRACKING = "target_tracking"
    STEP = "step"
    SCHEDULED = "scheduled"


class AdjustmentType(str, Enum):
    """How a step adjustment is interpreted."""

    CHANGE_IN_CAPACITY = "change_in_capacity"
    PERCENT_CHANGE_IN_CAPACITY = "percent_change_in_capacity"
    EXACT_CAPACITY = "exact_capacity"


@dataclass(frozen=True)
class TargetTrackingPolicy:
    """Keep ``metric`` close to ``target``."""

    name: str
    metric: str
    target: float
    scale_out_cooldown_seconds: float | None = None
    scale_in_cooldown_seconds: float | None = None
    disable_scale_in: bool = False
    kind: PolicyKind = field(default=PolicyKind.TARGET_TRACKING, init=False)

    def __post_init__(self):
        if not self.metric:
            raise ConfigInvalid(f"policy '{self.name}': metric is required")
        if self.target <= 0:
            raise ConfigInvalid(f"policy '{self.name}': target must be > 0")
        for cooldown in (self.scale_out_cooldown_seconds, self.scale_in_cooldown_seconds):
            if cooldown is not None and cooldown < 0:
                raise ConfigInvalid(f"policy '{self.name}': cooldowns must be >= 0")

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "name": self.name,
            "metric": self.metric,
            "target": self.target,
            "scale_out_cooldown_seconds": self.scale_out_cooldown_seconds,
            "scale_in_cooldown_seconds": self.scale_in_cooldown_seconds,
            "disable_scale_in": self.disable_scale_in,
        }


@dataclass(frozen=True)
class StepAdjustment:
    """One half-open interval [lower_bound, upper_bound) and its adjustment.

    A bound of None is unbounded on that side.
    """

    lower_bound: float | None
    upper_bound: float | None
    adjustment: int

    def contains(self, value: float) -> bool:
        if self.lower_bound is not None and value < self.lower_bound:
            return False
        if self.upper_bound is not None and value >= self.upper_bound:
            return False
        return True


@dataclass(frozen=True)
class StepPolicy:
    """Apply the adjustment of the interval the metric falls into."""

    name: str
    metric: str
    steps: tuple[StepAdjustment, ...]
    adjustment_type: AdjustmentType = AdjustmentType.CHANGE_IN_CAPACITY
    kind: PolicyKind = field(default=PolicyKind.STEP, init=False)

    def __post_init__(self):
        if not self.metric:
            raise ConfigInvalid(f"policy '{self.name}': metric is required")
        if not self.steps:
            raise ConfigInvalid(f"policy '{self.name}': at least one step is required")
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "adjustment_type", AdjustmentType(self.adjustment_type))
        self._validate_steps()

    def _validate_steps(self):
        last = len(self.steps) - 1
        for i, step in enumerate(self.steps):
            if step.lower_bound is None and i != 0:
                raise ConfigInvalid(
                    f"policy '{self.name}': only the first step may be unbounded below"
                )
            if step.upper_bound is None and i != last:
                raise ConfigInvalid(
                    f"policy '{self.name}': only the last step may be unbounded above"
                )
            if (
                step.lower_bound is not None
                and step.upper_bound is not None
                and step.lower_bound >= step.upper_bound
            ):
                raise ConfigInvalid(
                    f"policy '{self.name}': step {i} lower bound must be < upper bound"
                )
            if i > 0:
                prev = self.steps[i - 1]
                if prev.upper_bound > step.lower_bound:
                    raise ConfigInvalid(
                        f"policy '{self.name}': steps must be ordered and non-overlapping"
                    )

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "name": self.name,
            "metric": self.metric,
            "adjustment_type": self.adjustment_type.value,
            "steps": [
                [s.lower_bound, s.upper_bound, s.adjustment] for s in self.steps
            ],
        }


@dataclass(frozen=True)
class ScheduledPolicy:
    """Pin capacity into [min_size, max_size] from each cron fire time.

    Without ``duration_seconds`` an entry stays in effect until a later
    firing entry supersedes it.
    """

    name: str
    cron: str
    min_size: int
    max_size: int
    duration_seconds: float | None = None
    kind: PolicyKind = field(default=PolicyKind.SCHEDULED, init=False)

    def __post_init__(self):
        if not croniter.is_valid(self.cron):
            raise ConfigInvalid(f"policy '{self.name}': invalid cron expression '{self.cron}'")
        if self.min_size < 0 or self.max_size < self.min_size:
            raise ConfigInvalid(f"policy '{self.name}': require 0 <= min_size <= max_size")
        if self.duration_seconds is not None and self.duration_seconds <= 0:
            raise ConfigInvalid(f"policy '{self.name}': duration_seconds must be > 0")

    def last_fire_time(self, now: datetime) -> datetime:
        """Most recent fire time at or before ``now``."""
        if croniter.match(self.cron, now):
            return now.replace(second=0, microsecond=0)
        return croniter(self.cron, now).get_prev(datetime)

    def active_since(self, now: datetime) -> datetime | None:
        """Start of the window containing ``now``, or None when inactive."""
        fired = self.last_fire_time(now)
        if self.duration_seconds is not None:
            if now - fired >= timedelta(seconds=self.duration_seconds):
                return None
        return fired

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "name": self.name,
            "cron": self.cron,
            "min_size": self.min_size,
            "max_size": self.max_size,
            "duration_seconds": self.duration_seconds,
        }


Policy = Union[TargetTrackingPolicy, StepPolicy, ScheduledPolicy]


def policy_from_dict(data: dict) -> Policy:
    """Build a policy from its dictionary form.

    Args:
        data: Mapping with a ``type`` key naming the policy kind

    Returns:
        The policy instance

    Raises:
        ConfigInvalid: If the type is unknown or fields are malformed
    """
    if not isinstance(data, dict):
        raise ConfigInvalid("policy entries must be mappings")

    data = dict(data)
    kind = data.pop("type", None)
    data.setdefault("name", f"{kind}-policy")

    try:
        if kind == PolicyKind.TARGET_TRACKING.value:
            return TargetTrackingPolicy(**data)
        if kind == PolicyKind.STEP.value:
            raw_steps = data.pop("steps", [])
            steps = tuple(_step_from_raw(s) for s in raw_steps)
            return StepPolicy(steps=steps, **data)
        if kind == PolicyKind.SCHEDULED.value:
            return ScheduledPolicy(**data)
    except KeyError as e:
        raise ConfigInvalid(f"policy '{data.get('name')}': missing field {e}") from e
    except (TypeError, ValueError) as e:
        if isinstance(e, ConfigInvalid):
            raise
        raise ConfigInvalid(f"policy '{data.get('name')}': {e}") from e

    raise ConfigInvalid(f"unknown policy type '{kind}'")


def _step_from_raw(raw) -> StepAdjustment:
    if isinstance(raw, dict):
        return StepAdjustment(
            lower_bound=raw.get("lower_bound"),
            upper_bound=raw.get("upper_bound"),
            adjustment=int(raw["adjustment"]),
        )
    lower, upper, adjustment = raw
    return StepAdjustment(lower, upper, int(adjustment))


class PolicyEvaluator:
    """Turn metric samples into capacity deltas.

    Evaluation is pure: the group snapshot is only read.

    Example:
        >>> evaluator = PolicyEvaluator()
        >>> combined = evaluator.evaluate_all(policies, samples, group, now)
        >>> print(combined.delta, combined.trigger)
    """

    def evaluate(
        self,
        policy: Policy,
        samples: dict[str, MetricSample],
        group: ScalingGroup,
        now: datetime,
    ) -> CapacityDelta | None:
        """Evaluate a single policy.

        Args:
            policy: Policy to evaluate
            samples: Latest samples keyed by metric name
            group: Current group snapshot
            now: Evaluation time (used by scheduled policies)

        Returns:
            Proposed delta, or None if the policy does not apply right now

        Raises:
            SourceUnavailable: If the policy's metric has no sample
        """
        if isinstance(policy, TargetTrackingPolicy):
            value = self._metric_value(policy.metric, samples)
            return CapacityDelta(
                delta=self.target_tracking_delta(policy, value, group.current_capacity),
                trigger=policy.name,
                scale_out_cooldown_seconds=policy.scale_out_cooldown_seconds,
                scale_in_cooldown_seconds=policy.scale_in_cooldown_seconds,
            )
        if isinstance(policy, StepPolicy):
            value = self._metric_value(policy.metric, samples)
            return CapacityDelta(
                delta=self.step_delta(policy, value, group.current_capacity),
                trigger=policy.name,
            )
        if isinstance(policy, ScheduledPolicy):
            if policy.active_since(now) is None:
                return None
            return CapacityDelta(
                delta=self.scheduled_delta(policy, group.current_capacity),
                trigger=policy.name,
            )
        raise TypeError(f"unsupported policy type: {type(policy).__name__}")

    def evaluate_all(
        self,
        policies: list[Policy],
        samples: dict[str, MetricSample],
        group: ScalingGroup,
        now: datetime,
    ) -> CapacityDelta:
        """Evaluate every policy and combine the proposals.

        Of all scheduled policies only the latest-starting active one is
        considered. The combined delta is the largest proposal.

        Returns:
            Combined delta (zero with an empty trigger if nothing applies)
        """
        proposals = []

        scheduled = self.active_schedule(
            [p for p in policies if isinstance(p, ScheduledPolicy)], now
        )
        if scheduled is not None:
            proposals.append(self.evaluate(scheduled, samples, group, now))

        for policy in policies:
            if isinstance(policy, ScheduledPolicy):
                continue
            proposal = self.evaluate(policy, samples, group, now)
            if proposal is not None:
                proposals.append(proposal)

        if not proposals:
            return CapacityDelta(delta=0)

        for p in proposals:
            logger.debug("Policy %s proposes %+d", p.trigger, p.delta)

        return max(proposals, key=lambda p: p.delta)

    @staticmethod
    def active_schedule(
        policies: list[ScheduledPolicy],
        now: datetime,
    ) -> ScheduledPolicy | None:
        """Pick the active scheduled entry that started most recently."""
        best = None
        best_start = None
        for policy in policies:
            start = policy.active_since(now)
            if start is None:
                continue
            if best_start is None or start > best_start:
                best, best_start = policy, start
        return best

    @staticmethod
    def target_tracking_delta(
        policy: TargetTrackingPolicy,
        value: float,
        current_capacity: int,
    ) -> int:
        """Proportional delta: ceil(raw) when growing, floor(raw) when shrinking.

        With no capacity to scale from, any value above target asks for one
        instance.
        """
        if current_capacity == 0:
            return 1 if value > policy.target else 0

        raw = current_capacity * (value / policy.target) - current_capacity
        nearest = round(raw)
        if abs(raw - nearest) < _ROUNDING_EPSILON:
            raw = float(nearest)

        if raw > 0:
            return math.ceil(raw)
        if raw < 0:
            if policy.disable_scale_in:
                return 0
            return math.floor(raw)
        return 0

    @staticmethod
    def step_delta(policy: StepPolicy, value: float, current_capacity: int) -> int:
        """Adjustment of the highest interval containing ``value``."""
        # Steps are ordered by lower bound, so scan from the top
        matched = next((s for s in reversed(policy.steps) if s.contains(value)), None)
        if matched is None:
            return 0

        if policy.adjustment_type == AdjustmentType.EXACT_CAPACITY:
            return matched.adjustment - current_capacity
        if policy.adjustment_type == AdjustmentType.PERCENT_CHANGE_IN_CAPACITY:
            raw = current_capacity * matched.adjustment / 100
            return math.ceil(raw) if raw > 0 else math.floor(raw)
        return matched.adjustment

    @staticmethod
    def scheduled_delta(policy: ScheduledPolicy, current_capacity: int) -> int:
        target = max(policy.min_size, min(current_capacity, policy.max_size))
        return target - current_capacity

    @staticmethod
    def _metric_value(metric: str, samples: dict[str, MetricSample]) -> float:
        sample = samples.get(metric)
        if sample is None:
            raise SourceUnavailable(metric, "no sample collected")
        return sample.value
