"""Consecutive-threshold health checking."""

import asyncio
import logging

from src.lifecycle.interfaces import HealthCheck, HealthStatus
from src.scaling.config import HealthCheckConfig

logger = logging.getLogger(__name__)


class HealthTracker:
    """Count consecutive check results for one instance.

    A verdict is reached after ``healthy_threshold`` consecutive healthy
    results or ``unhealthy_threshold`` consecutive unhealthy ones. A result
    of the other kind resets the opposite streak.
    """

    def __init__(self, healthy_threshold: int = 2, unhealthy_threshold: int = 3):
        self.healthy_threshold = healthy_threshold
        self.unhealthy_threshold = unhealthy_threshold
        self.consecutive_healthy = 0
        self.consecutive_unhealthy = 0

    def record(self, status: HealthStatus) -> HealthStatus | None:
        """Record a result; return the verdict once a threshold is reached."""
        if status == HealthStatus.HEALTHY:
            self.consecutive_healthy += 1
            self.consecutive_unhealthy = 0
            if self.consecutive_healthy >= self.healthy_threshold:
                return HealthStatus.HEALTHY
        else:
            self.consecutive_unhealthy += 1
            self.consecutive_healthy = 0
            if self.consecutive_unhealthy >= self.unhealthy_threshold:
                return HealthStatus.UNHEALTHY
        return None

    def reset(self):
        self.consecutive_healthy = 0
        self.consecutive_unhealthy = 0


class HealthPoller:
    """Poll a health check until a verdict is reached."""

    def __init__(self, check: HealthCheck, config: HealthCheckConfig | None = None):
        self.check = check
        self.config = config or HealthCheckConfig()

    async def probe(self, instance_id: str) -> HealthStatus:
        """Run one check. A check that raises counts as unhealthy."""
        try:
            return HealthStatus(await self.check.check(instance_id))
        except Exception as e:
            logger.warning("Health check for %s raised: %s", instance_id, e)
            return HealthStatus.UNHEALTHY

    async def wait_for_verdict(
        self,
        instance_id: str,
        tracker: HealthTracker | None = None,
        stop_on: HealthStatus | None = None,
    ) -> HealthStatus:
        """Poll until the tracker reaches a verdict.

        Args:
            instance_id: Instance to check
            tracker: Streak counter (a fresh one is created if omitted)
            stop_on: Only return on this verdict; the other verdict resets
                the tracker and polling continues

        Returns:
            The verdict reached
        """
        tracker = tracker or HealthTracker(
            self.config.healthy_threshold, self.config.unhealthy_threshold
        )
        while True:
            status = await self.probe(instance_id)
            verdict = tracker.record(status)
            if verdict is not None:
                if stop_on is None or verdict == stop_on:
                    return verdict
                tracker.reset()
            await asyncio.sleep(self.config.interval_seconds)
