"""Cooldown and velocity governor.

Sits between the policy evaluator and the executor. A proposed delta is
either admitted (clamped to the velocity caps and the group bounds) or
rejected because the group is still cooling down from its last action in
the same direction.
"""

import logging
import math
from datetime import datetime, timedelta

from src.scaling.config import GovernorConfig
from src.scaling.models import (
    AdmittedDelta,
    CapacityDelta,
    Rejected,
    RejectionReason,
    ScalingGroup,
)

logger = logging.getLogger(__name__)


class CooldownGovernor:
    """Admit or reject capacity deltas.

    Rules, in order:
        1. A zero delta is admitted unchanged
        2. Scale-out inside the scale-out cooldown is rejected (same for scale-in)
        3. Magnitude is capped at a fraction of current capacity
        4. Desired capacity is clamped into [min_size, max_size]
    """

    def __init__(self, config: GovernorConfig | None = None):
        """Initialize governor.

        Args:
            config: Governor configuration
        """
        self.config = config or GovernorConfig()

    def admit(
        self,
        delta: CapacityDelta | int,
        group: ScalingGroup,
        now: datetime,
    ) -> AdmittedDelta | Rejected:
        """Admit a proposed delta.

        Args:
            delta: Proposed change (a bare int uses the default cooldowns)
            group: Current group snapshot
            now: Current time

        Returns:
            AdmittedDelta or Rejected
        """
        if isinstance(delta, int):
            delta = CapacityDelta(delta=delta)

        current = group.current_capacity

        if delta.delta == 0:
            return AdmittedDelta(delta=0, desired_capacity=group.desired_capacity, trigger=delta.trigger)

        if delta.delta > 0:
            cooldown = self._cooldown(delta.scale_out_cooldown_seconds, self.config.scale_out_cooldown_seconds)
            if self._in_cooldown(group.last_scale_out_at, cooldown, now):
                return Rejected(
                    reason=RejectionReason.IN_COOLDOWN,
                    detail=f"scale-out cooldown {cooldown.total_seconds():.0f}s active",
                )
            cap = max(1, math.ceil(current * self.config.max_scale_out_fraction))
            magnitude = min(delta.delta, cap)
            desired = group.clamp(current + magnitude)
        else:
            cooldown = self._cooldown(delta.scale_in_cooldown_seconds, self.config.scale_in_cooldown_seconds)
            if self._in_cooldown(group.last_scale_in_at, cooldown, now):
                return Rejected(
                    reason=RejectionReason.IN_COOLDOWN,
                    detail=f"scale-in cooldown {cooldown.total_seconds():.0f}s active",
                )
            cap = math.floor(current * self.config.max_scale_in_fraction)
            if cap == 0:
                return Rejected(
                    reason=RejectionReason.VELOCITY_EXCEEDED,
                    detail=f"scale-in cap is 0 at capacity {current}",
                )
            magnitude = min(-delta.delta, cap)
            desired = group.clamp(current - magnitude)

        capped = magnitude < abs(delta.delta)
        if capped:
            logger.info(
                "Velocity cap: requested %+d, capped to %d at capacity %d",
                delta.delta, magnitude, current,
            )

        # Already at the bound in the requested direction
        moved = desired - current
        if moved == 0 or (moved > 0) != (delta.delta > 0):
            return AdmittedDelta(delta=0, desired_capacity=group.clamp(current), trigger=delta.trigger)

        return AdmittedDelta(
            delta=desired - current,
            desired_capacity=desired,
            trigger=delta.trigger,
            capped=capped,
        )

    def cooldown_remaining(
        self,
        group: ScalingGroup,
        now: datetime,
    ) -> dict[str, float]:
        """Seconds left on the default cooldowns in each direction."""
        result = {}
        for key, last, seconds in (
            ("scale_out", group.last_scale_out_at, self.config.scale_out_cooldown_seconds),
            ("scale_in", group.last_scale_in_at, self.config.scale_in_cooldown_seconds),
        ):
            if last is None:
                result[key] = 0.0
            else:
                left = (last + timedelta(seconds=seconds) - now).total_seconds()
                result[key] = max(0.0, left)
        return result

    @staticmethod
    def _cooldown(policy_seconds: float | None, default_seconds: float) -> timedelta:
        seconds = policy_seconds if policy_seconds is not None else default_seconds
        return timedelta(seconds=seconds)

    @staticmethod
    def _in_cooldown(last: datetime | None, cooldown: timedelta, now: datetime) -> bool:
        if last is None:
            return False
        return now - last < cooldown
