"""Scaling executor.

Turns admitted deltas into launch and terminate requests and owns the
lifecycle of every instance it launched:

    PENDING -> WARMING -> IN_SERVICE -> DRAINING -> TERMINATED

Each instance is driven by its own asyncio task. Only that task changes the
instance's state. Scale-in marks the instance for termination and cancels
its task; the task then retires the instance itself, so an instance that
was still warming is terminated without ever being registered.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable

from src.lifecycle.health import HealthPoller
from src.lifecycle.hooks import HookFailed, HookPhase, HookRegistry
from src.lifecycle.instance import Instance, InstanceState
from src.lifecycle.interfaces import (
    HealthCheck,
    HealthStatus,
    InstanceProvisioner,
    LoadBalancer,
)
from src.metrics.sampler import utcnow
from src.scaling.config import ExecutorConfig, HealthCheckConfig
from src.scaling.errors import DrainTimeout, LaunchFailed
from src.scaling.models import AdmittedDelta, AppliedChange, ScalingGroup

logger = logging.getLogger(__name__)


class ScalingExecutor:
    """Apply capacity changes and drive instance lifecycles.

    Attributes:
        provisioner: Launches and terminates instances
        load_balancer: Registers in-service instances
        health_check: Per-instance health probe
        hooks: Lifecycle hook registry
        launch_failures: Launch requests that failed after all retries
        drain_timeouts: Drains that were force-terminated
    """

    def __init__(
        self,
        provisioner: InstanceProvisioner,
        load_balancer: LoadBalancer,
        health_check: HealthCheck,
        config: ExecutorConfig | None = None,
        health_config: HealthCheckConfig | None = None,
        hooks: HookRegistry | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.provisioner = provisioner
        self.load_balancer = load_balancer
        self.health_check = health_check
        self.config = config or ExecutorConfig()
        self.health_config = health_config or HealthCheckConfig()
        self.hooks = hooks or HookRegistry()
        self.clock = clock

        self._poller = HealthPoller(health_check, self.health_config)
        self._instances: dict[str, Instance] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._shutting_down = False

        self.launch_failures = 0
        self.drain_timeouts = 0

    # ------------------------------------------------------------------
    # Capacity changes
    # ------------------------------------------------------------------

    async def apply(
        self,
        admitted: AdmittedDelta | int,
        group: ScalingGroup | None = None,
    ) -> AppliedChange:
        """Apply an admitted delta.

        Returns as soon as launches or terminations are requested; the
        instances finish their transitions in the background.

        Args:
            admitted: Delta admitted by the governor (or a bare int)
            group: Group snapshot, used for logging only

        Returns:
            AppliedChange describing what was set in motion
        """
        delta = admitted.delta if isinstance(admitted, AdmittedDelta) else int(admitted)
        name = group.name if group is not None else "-"

        if delta > 0:
            change = await self._scale_out(delta)
        elif delta < 0:
            change = self._scale_in(-delta)
        else:
            return AppliedChange(requested=0)

        logger.info(
            "Group %s: requested %+d, launched=%d terminating=%d cancelled=%d failed=%d",
            name, delta, len(change.launched), len(change.terminating),
            len(change.cancelled), change.failed_launches,
        )
        return change

    async def _scale_out(self, count: int) -> AppliedChange:
        results = await asyncio.gather(
            *(self._launch_with_retry() for _ in range(count)),
            return_exceptions=True,
        )

        change = AppliedChange(requested=count)
        last_error = None
        for result in results:
            if isinstance(result, BaseException):
                if not isinstance(result, LaunchFailed):
                    raise result
                change.failed_launches += 1
                last_error = result
                continue
            instance = Instance(
                id=result,
                state=InstanceState.PENDING,
                launched_at=self.clock(),
            )
            self._instances[instance.id] = instance
            self._start_task(instance, self._run_lifecycle(instance))
            change.launched.append(instance.id)

        if change.failed_launches:
            self.launch_failures += change.failed_launches
            logger.warning("%d of %d launches failed: %s", change.failed_launches, count, last_error)
        if not change.launched and last_error is not None:
            change.error = last_error
        return change

    async def _launch_with_retry(self) -> str:
        attempts = self.config.launch_retries + 1
        try:
            return await self._with_retry(
                lambda: self.provisioner.launch(dict(self.config.launch_spec)),
                "launch",
            )
        except Exception as e:
            raise LaunchFailed(attempts, str(e) or type(e).__name__) from e

    async def _with_retry(self, operation: Callable[[], Awaitable], description: str):
        """Run ``operation`` with bounded retries and exponential backoff."""
        attempts = self.config.launch_retries + 1
        delay = self.config.launch_backoff_seconds
        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except Exception as e:
                if attempt == attempts:
                    raise
                logger.warning(
                    "%s attempt %d/%d failed: %s; retrying in %.1fs",
                    description, attempt, attempts, e, delay,
                )
                await asyncio.sleep(delay)
                delay *= self.config.launch_backoff_factor

    def _scale_in(self, count: int) -> AppliedChange:
        change = AppliedChange(requested=-count)
        for instance in self._select_victims(count):
            instance.termination_requested = True
            if instance.is_in_flight:
                change.cancelled.append(instance.id)
            else:
                change.terminating.append(instance.id)
            task = self._tasks.get(instance.id)
            if task is not None:
                task.cancel()
        return change

    def _select_victims(self, count: int) -> list[Instance]:
        """Not-yet-in-service instances first (newest first), then oldest in service."""
        candidates = [i for i in self._instances.values() if not i.termination_requested]
        in_flight = sorted(
            (i for i in candidates if i.is_in_flight),
            key=lambda i: i.launched_at,
            reverse=True,
        )
        in_service = sorted(
            (i for i in candidates if i.state == InstanceState.IN_SERVICE),
            key=lambda i: i.in_service_at or i.launched_at,
        )
        return (in_flight + in_service)[:count]

    # ------------------------------------------------------------------
    # Per-instance lifecycle (runs inside the instance's own task)
    # ------------------------------------------------------------------

    def _start_task(self, instance: Instance, coro) -> None:
        task = asyncio.create_task(coro, name=f"lifecycle-{instance.id}")
        self._tasks[instance.id] = task
        task.add_done_callback(lambda t: self._on_task_done(instance, t))

    def _on_task_done(self, instance: Instance, task: asyncio.Task) -> None:
        if self._tasks.get(instance.id) is task:
            del self._tasks[instance.id]
        # A task cancelled before it first ran never reached its handler
        if (
            task.cancelled()
            and not self._shutting_down
            and instance.termination_requested
            and instance.id in self._instances
        ):
            self._start_task(instance, self._retire(instance))
        elif not task.cancelled() and task.exception() is not None:
            logger.error("Lifecycle task for %s crashed: %s", instance.id, task.exception())

    async def _run_lifecycle(self, instance: Instance) -> None:
        try:
            try:
                healthy = await self._bring_into_service(instance)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Instance %s failed to come into service: %s", instance.id, e)
                healthy = False

            if healthy:
                await self._poller.wait_for_verdict(instance.id, stop_on=HealthStatus.UNHEALTHY)
                logger.warning("Instance %s failed health checks while in service", instance.id)
            await self._retire(instance)
        except asyncio.CancelledError:
            if self._shutting_down or not instance.termination_requested:
                raise
            await self._retire(instance)

    async def _bring_into_service(self, instance: Instance) -> bool:
        """Warm up and health-check an instance. Returns False on failure."""
        instance.address = await self.provisioner.address(instance.id)
        instance.transition(InstanceState.WARMING, self.clock())

        try:
            await self.hooks.run(
                HookPhase.PRE_SERVICE,
                instance,
                hook_timeout=self.config.hook_timeout_seconds,
            )
        except HookFailed as e:
            logger.warning("Instance %s failed warm-up: %s", instance.id, e)
            return False

        try:
            verdict = await asyncio.wait_for(
                self._poller.wait_for_verdict(instance.id),
                timeout=self.health_config.warmup_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Instance %s not healthy within %.0fs",
                instance.id, self.health_config.warmup_timeout_seconds,
            )
            return False

        if verdict != HealthStatus.HEALTHY:
            logger.warning("Instance %s rejected by health checks", instance.id)
            return False

        instance.transition(InstanceState.IN_SERVICE, self.clock())
        await self.load_balancer.register(instance.id, instance.address)
        return True

    async def _retire(self, instance: Instance) -> None:
        """Take an instance out of service and terminate it."""
        instance.termination_requested = True
        try:
            if instance.state == InstanceState.IN_SERVICE:
                instance.transition(InstanceState.DRAINING, self.clock())
                await self._drain(instance)

            try:
                await self._with_retry(
                    lambda: self.provisioner.terminate(instance.id),
                    f"terminate {instance.id}",
                )
            except Exception as e:
                logger.error("Terminate of %s failed after retries: %s", instance.id, e)

            if instance.state != InstanceState.TERMINATED:
                instance.transition(InstanceState.TERMINATED, self.clock())
        finally:
            self._instances.pop(instance.id, None)

    async def _drain(self, instance: Instance) -> None:
        try:
            await self.load_balancer.deregister(instance.id)
        except Exception as e:
            logger.error("Deregister of %s failed: %s", instance.id, e)

        timeout = self.config.drain_timeout_seconds
        try:
            await asyncio.wait_for(
                self.hooks.run(HookPhase.PRE_TERMINATION, instance),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self.drain_timeouts += 1
            logger.warning("Degraded: %s; force terminating", DrainTimeout(instance.id, timeout))
        except HookFailed as e:
            logger.warning("Degraded: pre-termination hook failed for %s: %s", instance.id, e)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def instances(self) -> list[Instance]:
        """Snapshots of every tracked instance."""
        return [i.snapshot() for i in self._instances.values()]

    def get_instance(self, instance_id: str) -> Instance | None:
        instance = self._instances.get(instance_id)
        return instance.snapshot() if instance else None

    def in_service_count(self) -> int:
        """Instances counted toward current capacity."""
        return sum(
            1 for i in self._instances.values()
            if i.state == InstanceState.IN_SERVICE and not i.termination_requested
        )

    def in_flight_count(self) -> int:
        """Launched instances that are not yet in service."""
        return sum(
            1 for i in self._instances.values()
            if i.is_in_flight and not i.termination_requested
        )

    def state_counts(self) -> dict[str, int]:
        counts = {state.value: 0 for state in InstanceState}
        for instance in self._instances.values():
            counts[instance.state.value] += 1
        return counts

    async def wait_until_settled(self, timeout: float = 10.0, poll_interval: float = 0.01) -> None:
        """Wait until no instance is pending, warming or draining.

        Raises:
            asyncio.TimeoutError: If instances are still transitioning
        """
        transitional = {InstanceState.PENDING, InstanceState.WARMING, InstanceState.DRAINING}

        async def _wait():
            while any(
                i.state in transitional or i.termination_requested
                for i in self._instances.values()
            ):
                await asyncio.sleep(poll_interval)

        await asyncio.wait_for(_wait(), timeout=timeout)

    async def shutdown(self) -> None:
        """Stop every lifecycle task without terminating instances."""
        self._shutting_down = True
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
