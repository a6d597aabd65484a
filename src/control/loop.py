"""Autoscaling control loop.

Each tick runs the pipeline

    sample -> evaluate -> admit -> circuit breaker -> apply

against a snapshot of the scaling group. The loop is the only writer of the
group: every other component reads a snapshot and returns data. Only one
tick may be in flight; a tick that fires while another is running is
skipped, never queued.
"""

import asyncio
import logging
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Protocol

from src.lifecycle.executor import ScalingExecutor
from src.lifecycle.hooks import HookRegistry
from src.metrics.sampler import MetricSampler, MetricsSource, utcnow
from src.scaling.breaker import ScalingCircuitBreaker
from src.scaling.config import AutoscalerConfig
from src.scaling.errors import SourceUnavailable
from src.scaling.governor import CooldownGovernor
from src.scaling.models import (
    AdmittedDelta,
    AppliedChange,
    CapacityDelta,
    MetricSample,
    Rejected,
    ScalingDirection,
    ScalingEvent,
    ScalingGroup,
)
from src.scaling.policy import PolicyEvaluator

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    """Append-only destination for scaling events."""

    def log(self, event: ScalingEvent) -> None:
        ...


class TickOutcome(str, Enum):
    """What a tick ended up doing."""

    SCALED = "scaled"
    NO_ACTION = "no_action"
    AT_BOUNDARY = "at_boundary"
    REJECTED = "rejected"
    CIRCUIT_OPEN = "circuit_open"
    SKIPPED_NO_DATA = "skipped_no_data"
    SKIPPED_BUSY = "skipped_busy"
    LAUNCH_FAILED = "launch_failed"
    REPLACED = "replaced"
    ERROR = "error"


@dataclass
class TickResult:
    """Outcome of one tick."""

    outcome: TickOutcome
    timestamp: datetime
    delta: int = 0
    reason: str = ""
    event: ScalingEvent | None = None

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "timestamp": self.timestamp,
            "delta": self.delta,
            "reason": self.reason,
        }


class ControlLoop:
    """Drive one scaling group on a fixed interval.

    Attributes:
        config: Autoscaler configuration
        group: Current scaling group snapshot
        history: Most recent scaling events
        last_result: Result of the latest tick
        outcome_counts: Tick outcomes seen so far
    """

    def __init__(
        self,
        config: AutoscalerConfig,
        sampler: MetricSampler,
        executor: ScalingExecutor,
        evaluator: PolicyEvaluator | None = None,
        governor: CooldownGovernor | None = None,
        breaker: ScalingCircuitBreaker | None = None,
        audit_sink: AuditSink | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.sampler = sampler
        self.executor = executor
        self.evaluator = evaluator or PolicyEvaluator()
        self.governor = governor or CooldownGovernor(config.governor)
        self.breaker = breaker or ScalingCircuitBreaker(config.breaker)
        self.audit_sink = audit_sink
        self.clock = clock

        self.group: ScalingGroup = config.group.build_group(current_capacity=0)
        self.history: deque[ScalingEvent] = deque(maxlen=config.loop.history_size)
        self.last_result: TickResult | None = None
        self.outcome_counts: Counter = Counter()

        self._tick_in_flight = False
        self._run_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        config: AutoscalerConfig,
        metrics_source: MetricsSource,
        provisioner,
        load_balancer,
        health_check,
        audit_sink: AuditSink | None = None,
        hooks: HookRegistry | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "ControlLoop":
        """Wire every component from configuration and collaborators."""
        sampler = MetricSampler(metrics_source, config.sampler, clock=clock)
        executor = ScalingExecutor(
            provisioner,
            load_balancer,
            health_check,
            config=config.executor,
            health_config=config.health_check,
            hooks=hooks,
            clock=clock,
        )
        return cls(config, sampler, executor, audit_sink=audit_sink, clock=clock)

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def tick(self, now: datetime | None = None) -> TickResult:
        """Run one evaluation cycle.

        Never raises: failures are contained, logged and reported in the
        result.

        Args:
            now: Evaluation time (defaults to the clock)

        Returns:
            TickResult
        """
        now = now or self.clock()
        if self._tick_in_flight:
            logger.info("Group %s: previous tick still running, skipping", self.group.name)
            result = TickResult(TickOutcome.SKIPPED_BUSY, now, reason="tick in flight")
            self.outcome_counts[result.outcome] += 1
            return result

        self._tick_in_flight = True
        try:
            result = await self._run_pipeline(now)
        except Exception as e:
            logger.exception("Group %s: tick failed", self.group.name)
            result = TickResult(TickOutcome.ERROR, now, reason=str(e))
        finally:
            self._tick_in_flight = False

        self.last_result = result
        self.outcome_counts[result.outcome] += 1
        return result

    async def _run_pipeline(self, now: datetime) -> TickResult:
        self._refresh_capacity()

        replaced = await self._replace_missing_capacity(now)
        if replaced is not None:
            return replaced

        try:
            samples = await self.sampler.sample(self.config.metric_names)
            proposal = self.evaluator.evaluate_all(self.config.policies, samples, self.group, now)
        except SourceUnavailable as e:
            logger.warning("Group %s: skipping tick, %s", self.group.name, e)
            return TickResult(TickOutcome.SKIPPED_NO_DATA, now, reason=str(e))

        if proposal.delta == 0:
            return TickResult(TickOutcome.NO_ACTION, now)

        verdict = self._admit(proposal, self.group, now)
        if isinstance(verdict, Rejected):
            logger.info(
                "Group %s: %+d from %s rejected (%s: %s)",
                self.group.name, proposal.delta, proposal.trigger,
                verdict.reason.value, verdict.detail,
            )
            return TickResult(
                TickOutcome.REJECTED, now, delta=proposal.delta, reason=verdict.reason.value
            )

        if verdict.delta == 0:
            return TickResult(TickOutcome.AT_BOUNDARY, now, reason="capacity at bound")

        if not self.breaker.can_scale(now):
            reopens = self.breaker.reopens_at(now)
            logger.warning(
                "Group %s: scaling circuit open, suppressing %+d from %s until %s",
                self.group.name, verdict.delta, verdict.trigger, reopens,
            )
            return TickResult(
                TickOutcome.CIRCUIT_OPEN, now, delta=verdict.delta, reason="circuit open"
            )

        change = await self.executor.apply(verdict, self.group)
        if change.applied == 0:
            logger.warning(
                "Group %s: %+d not applied: %s", self.group.name, verdict.delta, change.error
            )
            return TickResult(
                TickOutcome.LAUNCH_FAILED, now, delta=verdict.delta, reason=str(change.error)
            )

        event = self._record(verdict, change, now)
        return TickResult(
            TickOutcome.SCALED, now, delta=change.applied, reason=verdict.trigger, event=event
        )

    def _refresh_capacity(self) -> None:
        self.group = self._live_group()

    def _live_group(self) -> ScalingGroup:
        """Group snapshot with current capacity read from the executor."""
        current = self.executor.in_service_count()
        if current == self.group.current_capacity:
            return self.group
        return self.group.with_changes(current_capacity=current)

    def _admit(
        self,
        proposal: CapacityDelta,
        group: ScalingGroup,
        now: datetime,
    ) -> AdmittedDelta | Rejected:
        """Run the governor, then keep launched capacity within max_size.

        The governor only sees in-service capacity. Instances still warming
        will enter service later, so a scale-out may only use the headroom
        left after counting them.
        """
        verdict = self.governor.admit(proposal, group, now)
        if isinstance(verdict, Rejected) or verdict.delta <= 0:
            return verdict

        in_flight = self.executor.in_flight_count()
        headroom = group.max_size - group.current_capacity - in_flight
        if verdict.delta <= headroom:
            return verdict

        logger.info(
            "Group %s: %+d limited to %d by %d instances in flight",
            group.name, verdict.delta, max(headroom, 0), in_flight,
        )
        if headroom <= 0:
            return AdmittedDelta(
                delta=0, desired_capacity=group.desired_capacity, trigger=verdict.trigger
            )
        return AdmittedDelta(
            delta=headroom,
            desired_capacity=group.max_size,
            trigger=verdict.trigger,
            capped=True,
        )

    async def _replace_missing_capacity(self, now: datetime) -> TickResult | None:
        """Launch instances when in-service plus in-flight is below desired.

        Covers the initial launch and replacement of failed instances. Not
        subject to cooldowns or the circuit breaker.
        """
        accounted = self.group.current_capacity + self.executor.in_flight_count()
        missing = self.group.desired_capacity - accounted
        if missing <= 0:
            return None

        logger.info(
            "Group %s: %d instances below desired capacity %d, launching replacements",
            self.group.name, missing, self.group.desired_capacity,
        )
        change = await self.executor.apply(missing, self.group)
        if change.applied == 0:
            return TickResult(TickOutcome.LAUNCH_FAILED, now, delta=missing, reason=str(change.error))
        return TickResult(TickOutcome.REPLACED, now, delta=change.applied, reason="replacement")

    def _record(self, verdict: AdmittedDelta, change: AppliedChange, now: datetime) -> ScalingEvent:
        old = self.group.current_capacity
        new_desired = self.group.clamp(self.group.desired_capacity + change.applied)
        direction = ScalingDirection.OUT if change.applied > 0 else ScalingDirection.IN

        updates = {"desired_capacity": new_desired}
        if direction == ScalingDirection.OUT:
            updates["last_scale_out_at"] = now
        else:
            updates["last_scale_in_at"] = now
        self.group = self.group.with_changes(**updates)
        self._refresh_capacity()

        event = ScalingEvent(
            timestamp=now,
            direction=direction,
            magnitude=abs(change.applied),
            trigger=verdict.trigger,
            old_capacity=old,
            new_capacity=old + change.applied,
            group=self.group.name,
        )
        self.breaker.record_event(now)
        self.history.append(event)
        logger.info(
            "Group %s: scaled %s by %d (%d -> %d) via %s",
            self.group.name, direction.value, event.magnitude,
            event.old_capacity, event.new_capacity, event.trigger,
        )

        if self.audit_sink is not None:
            task = asyncio.create_task(self._audit(event))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        return event

    async def _audit(self, event: ScalingEvent) -> None:
        try:
            await asyncio.to_thread(self.audit_sink.log, event)
        except Exception as e:
            logger.warning("Audit sink failed for event at %s: %s", event.timestamp, e)

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    def dry_run(
        self,
        values: dict[str, float],
        now: datetime | None = None,
    ) -> tuple[CapacityDelta, AdmittedDelta | Rejected]:
        """Evaluate and admit for given metric values without side effects.

        Uses live executor capacity, so the answer matches what the next tick
        would decide for the same values.
        """
        now = now or self.clock()
        group = self._live_group()
        samples = {
            name: MetricSample(name=name, value=float(value), timestamp=now)
            for name, value in values.items()
        }
        proposal = self.evaluator.evaluate_all(self.config.policies, samples, group, now)
        return proposal, self._admit(proposal, group, now)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def run(self, max_ticks: int | None = None) -> None:
        """Fire ticks on the configured interval.

        Ticks run as their own tasks so a slow tick does not delay the
        schedule; overlapping ticks are skipped by ``tick``.
        """
        interval = self.config.tick_interval_seconds
        logger.info("Group %s: control loop started, interval %.1fs", self.group.name, interval)
        fired = 0
        while max_ticks is None or fired < max_ticks:
            task = asyncio.create_task(self.tick())
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            fired += 1
            await asyncio.sleep(interval)

    def start(self) -> asyncio.Task:
        """Start ``run`` in the background."""
        if self._run_task is None or self._run_task.done():
            self._run_task = asyncio.create_task(self.run())
        return self._run_task

    async def stop(self) -> None:
        """Stop ticking, wait for pending work and stop lifecycle tasks."""
        if self._run_task is not None:
            self._run_task.cancel()
            await asyncio.gather(self._run_task, return_exceptions=True)
            self._run_task = None
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.executor.shutdown()
        logger.info("Group %s: control loop stopped", self.group.name)

    @property
    def is_running(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    def status(self) -> dict:
        """Snapshot of loop state for observability."""
        now = self.clock()
        group = self._live_group()
        return {
            "group": group.to_dict(),
            "running": self.is_running,
            "tick_interval_seconds": self.config.tick_interval_seconds,
            "instances": self.executor.state_counts(),
            "breaker": {
                "events_in_window": self.breaker.event_count(now),
                "max_events": self.breaker.config.max_events,
                "open": not self.breaker.can_scale(now),
                "reopens_at": self.breaker.reopens_at(now),
            },
            "cooldown_remaining": self.governor.cooldown_remaining(self.group, now),
            "last_tick": self.last_result.to_dict() if self.last_result else None,
            "outcome_counts": {k.value: v for k, v in self.outcome_counts.items()},
            "launch_failures": self.executor.launch_failures,
            "drain_timeouts": self.executor.drain_timeouts,
        }
