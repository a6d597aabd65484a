"""Lifecycle hook registry with priority ordering.

Two phases exist:
    - pre_service: runs while an instance is warming (cache warm-up,
      config load, connection pools). Must succeed before health checks.
    - pre_termination: runs while an instance is draining (connection
      close-out). Bounded by the drain timeout.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from src.lifecycle.instance import Instance
from src.scaling.errors import AutoscalerError

logger = logging.getLogger(__name__)


class HookPhase(str, Enum):
    PRE_SERVICE = "pre_service"
    PRE_TERMINATION = "pre_termination"


class HookFailed(AutoscalerError):
    """Raised when a lifecycle hook raises or times out."""

    def __init__(self, hook_name: str, instance_id: str, reason: str):
        self.hook_name = hook_name
        self.instance_id = instance_id
        self.reason = reason
        super().__init__(f"Hook '{hook_name}' failed for {instance_id}: {reason}")


@dataclass
class Hook:
    """A registered lifecycle hook callback.

    The callback receives a snapshot of the instance and may be a plain
    function or a coroutine function.
    """

    name: str
    phase: HookPhase
    callback: Callable
    priority: int = 100
    enabled: bool = True

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.callback)


@dataclass
class HookResult:
    """Result of executing a hook."""

    hook_name: str
    instance_id: str
    success: bool
    duration_ms: float = 0.0
    error: str | None = None


class HookRegistry:
    """Registry for lifecycle hooks. Lower priority number runs first."""

    def __init__(self):
        self._hooks: list[Hook] = []
        self._results: list[HookResult] = []

    def register(
        self,
        phase: HookPhase | str,
        name: str,
        callback: Callable,
        priority: int = 100,
    ) -> Hook:
        """Register a hook for a phase."""
        hook = Hook(name=name, phase=HookPhase(phase), callback=callback, priority=priority)
        self._hooks.append(hook)
        logger.info("Registered %s hook '%s' with priority %d", hook.phase.value, name, priority)
        return hook

    def unregister(self, name: str) -> bool:
        """Unregister a hook by name."""
        before = len(self._hooks)
        self._hooks = [h for h in self._hooks if h.name != name]
        return len(self._hooks) < before

    def hooks_for(self, phase: HookPhase) -> list[Hook]:
        """Enabled hooks for a phase, sorted by priority."""
        return sorted(
            [h for h in self._hooks if h.enabled and h.phase == phase],
            key=lambda h: h.priority,
        )

    @property
    def results(self) -> list[HookResult]:
        return list(self._results)

    async def run(
        self,
        phase: HookPhase,
        instance: Instance,
        hook_timeout: float | None = None,
    ) -> list[HookResult]:
        """Run every hook of a phase in priority order.

        Stops at the first failure.

        Args:
            phase: Phase to run
            instance: Instance the hooks act on (a snapshot is passed)
            hook_timeout: Bound on each individual hook, if any

        Returns:
            Results of the hooks that ran

        Raises:
            HookFailed: If a hook raises or exceeds ``hook_timeout``
        """
        results = []
        for hook in self.hooks_for(phase):
            result = await self._execute(hook, instance, hook_timeout)
            results.append(result)
            if not result.success:
                raise HookFailed(hook.name, instance.id, result.error or "unknown error")
        return results

    async def _execute(
        self,
        hook: Hook,
        instance: Instance,
        hook_timeout: float | None,
    ) -> HookResult:
        start = time.monotonic()
        snapshot = instance.snapshot()
        try:
            if hook.is_async:
                call = hook.callback(snapshot)
            else:
                call = asyncio.to_thread(hook.callback, snapshot)
            await asyncio.wait_for(call, timeout=hook_timeout)
            duration_ms = (time.monotonic() - start) * 1000
            result = HookResult(
                hook_name=hook.name,
                instance_id=instance.id,
                success=True,
                duration_ms=duration_ms,
            )
            logger.debug("Hook '%s' for %s completed in %.1fms", hook.name, instance.id, duration_ms)
        except asyncio.TimeoutError:
            result = HookResult(
                hook_name=hook.name,
                instance_id=instance.id,
                success=False,
                duration_ms=(time.monotonic() - start) * 1000,
                error=f"timed out after {hook_timeout:.1f}s",
            )
            logger.error("Hook '%s' for %s timed out", hook.name, instance.id)
        except Exception as exc:
            result = HookResult(
                hook_name=hook.name,
                instance_id=instance.id,
                success=False,
                duration_ms=(time.monotonic() - start) * 1000,
                error=str(exc),
            )
            logger.error("Hook '%s' for %s failed: %s", hook.name, instance.id, exc)
        self._results.append(result)
        return result
