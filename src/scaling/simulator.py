"""Offline simulation of scaling decisions.

Replays metric time series through the policy evaluator, governor and
circuit breaker with instantaneous capacity changes (no warm-up, no
launch failures). Useful to compare policy and governor settings before
deploying them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd

from src.scaling.breaker import ScalingCircuitBreaker
from src.scaling.config import AutoscalerConfig, GovernorConfig
from src.scaling.governor import CooldownGovernor
from src.scaling.models import (
    MetricSample,
    Rejected,
    RejectionReason,
    ScalingDirection,
    ScalingEvent,
)
from src.scaling.policy import PolicyEvaluator


@dataclass
class SimulationMetrics:
    """Metrics from a simulation run."""

    # Capacity metrics
    avg_capacity: float
    max_capacity: int
    min_capacity: int
    instance_hours: float

    # Decision metrics
    scaling_events: int
    scale_out_events: int
    scale_in_events: int
    cooldown_rejections: int
    velocity_rejections: int
    capped_events: int
    circuit_open_periods: int

    # Time series
    capacity_over_time: list = field(default_factory=list)
    events: list = field(default_factory=list)

    def __str__(self) -> str:
        return (
            f"Simulation Results:\n"
            f"  Avg Capacity: {self.avg_capacity:.2f} (min {self.min_capacity}, max {self.max_capacity})\n"
            f"  Instance Hours: {self.instance_hours:.2f}\n"
            f"  Scaling Events: {self.scaling_events} (out: {self.scale_out_events}, in: {self.scale_in_events})\n"
            f"  Rejections: cooldown={self.cooldown_rejections}, velocity={self.velocity_rejections}\n"
            f"  Circuit Open Periods: {self.circuit_open_periods}"
        )

    def events_frame(self) -> pd.DataFrame:
        """Scaling events as a DataFrame."""
        if not self.events:
            return pd.DataFrame()
        return pd.DataFrame([e.to_dict() for e in self.events])


class ScalingSimulator:
    """Run recorded metrics through the scaling pipeline.

    Metrics listed in ``per_instance`` are treated as fleet totals and
    divided by the simulated capacity at each step, so a scale-out lowers
    the per-instance value the policies see next.
    """

    def __init__(
        self,
        config: AutoscalerConfig | None = None,
        interval_seconds: float = 60.0,
        per_instance: set[str] | None = None,
    ):
        """Initialize simulator.

        Args:
            config: Autoscaler configuration (policies, bounds, governor)
            interval_seconds: Time between rows when no timestamps are given
            per_instance: Metrics to divide by capacity
        """
        self.config = config or AutoscalerConfig()
        self.interval_seconds = interval_seconds
        self.per_instance = set(per_instance or ())

    def simulate(
        self,
        metrics: pd.DataFrame,
        timestamps: pd.DatetimeIndex | list | None = None,
        governor_config: GovernorConfig | None = None,
        initial_capacity: int | None = None,
    ) -> SimulationMetrics:
        """Run simulation over metric rows.

        Args:
            metrics: One column per metric, one row per evaluation
            timestamps: Evaluation times (generated from the interval if None)
            governor_config: Override the configured governor
            initial_capacity: Starting capacity (defaults to desired capacity)

        Returns:
            SimulationMetrics with results
        """
        n_periods = len(metrics)
        if timestamps is None:
            start = datetime(2024, 1, 1, tzinfo=timezone.utc)
            timestamps = [
                start + timedelta(seconds=i * self.interval_seconds)
                for i in range(n_periods)
            ]
        timestamps = [pd.Timestamp(ts).to_pydatetime() for ts in timestamps]
        if len(timestamps) != n_periods:
            raise ValueError(
                f"got {len(timestamps)} timestamps for {n_periods} metric rows"
            )

        evaluator = PolicyEvaluator()
        governor = CooldownGovernor(governor_config or self.config.governor)
        breaker = ScalingCircuitBreaker(self.config.breaker)

        group = self.config.group.build_group()
        capacity = group.clamp(
            initial_capacity if initial_capacity is not None else group.desired_capacity
        )
        group = group.with_changes(desired_capacity=capacity, current_capacity=capacity)

        capacities = []
        events: list[ScalingEvent] = []
        cooldown_rejections = velocity_rejections = capped = circuit_open = 0

        for (_, row), now in zip(metrics.iterrows(), timestamps):
            samples = {
                name: MetricSample(
                    name=name,
                    value=self._per_instance_value(name, float(row[name]), group.current_capacity),
                    timestamp=now,
                )
                for name in metrics.columns
            }
            proposal = evaluator.evaluate_all(self.config.policies, samples, group, now)
            verdict = governor.admit(proposal, group, now)

            if isinstance(verdict, Rejected):
                if verdict.reason == RejectionReason.IN_COOLDOWN:
                    cooldown_rejections += 1
                else:
                    velocity_rejections += 1
            elif verdict.delta != 0:
                if not breaker.can_scale(now):
                    circuit_open += 1
                else:
                    capped += int(verdict.capped)
                    direction = ScalingDirection.OUT if verdict.delta > 0 else ScalingDirection.IN
                    events.append(ScalingEvent(
                        timestamp=now,
                        direction=direction,
                        magnitude=abs(verdict.delta),
                        trigger=verdict.trigger,
                        old_capacity=group.current_capacity,
                        new_capacity=verdict.desired_capacity,
                        group=group.name,
                    ))
                    breaker.record_event(now)
                    stamp = "last_scale_out_at" if direction == ScalingDirection.OUT else "last_scale_in_at"
                    group = group.with_changes(
                        desired_capacity=verdict.desired_capacity,
                        current_capacity=verdict.desired_capacity,
                        **{stamp: now},
                    )

            capacities.append(group.current_capacity)

        capacities = np.array(capacities, dtype=float)
        scale_out = sum(1 for e in events if e.direction == ScalingDirection.OUT)
        total_hours_per_step = self._step_hours(timestamps)

        return SimulationMetrics(
            avg_capacity=float(np.mean(capacities)) if n_periods else 0.0,
            max_capacity=int(np.max(capacities)) if n_periods else 0,
            min_capacity=int(np.min(capacities)) if n_periods else 0,
            instance_hours=float(np.sum(capacities * total_hours_per_step)) if n_periods else 0.0,
            scaling_events=len(events),
            scale_out_events=scale_out,
            scale_in_events=len(events) - scale_out,
            cooldown_rejections=cooldown_rejections,
            velocity_rejections=velocity_rejections,
            capped_events=capped,
            circuit_open_periods=circuit_open,
            capacity_over_time=capacities.astype(int).tolist(),
            events=events,
        )

    def compare_governors(
        self,
        metrics: pd.DataFrame,
        governors: dict[str, GovernorConfig],
        timestamps: pd.DatetimeIndex | list | None = None,
    ) -> pd.DataFrame:
        """Compare governor settings on the same metrics.

        Args:
            metrics: Metric rows
            governors: Dict of name -> governor config
            timestamps: Evaluation times

        Returns:
            DataFrame indexed by governor name
        """
        results = []
        for name, governor in governors.items():
            result = self.simulate(metrics, timestamps, governor_config=governor)
            results.append({
                "governor": name,
                "avg_capacity": result.avg_capacity,
                "max_capacity": result.max_capacity,
                "instance_hours": result.instance_hours,
                "scaling_events": result.scaling_events,
                "cooldown_rejections": result.cooldown_rejections,
                "velocity_rejections": result.velocity_rejections,
                "circuit_open_periods": result.circuit_open_periods,
            })
        return pd.DataFrame(results).set_index("governor")

    def _per_instance_value(self, name: str, value: float, capacity: int) -> float:
        if name not in self.per_instance:
            return value
        return value / capacity if capacity > 0 else value

    def _step_hours(self, timestamps: list[datetime]) -> np.ndarray:
        """Duration of each step in hours (the last step reuses the interval)."""
        if not timestamps:
            return np.array([])
        seconds = np.array(
            [(b - a).total_seconds() for a, b in zip(timestamps, timestamps[1:])]
            + [self.interval_seconds],
            dtype=float,
        )
        return seconds / 3600
