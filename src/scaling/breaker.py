"""Scaling circuit breaker.

Counts applied scaling events in a sliding window and suppresses further
scaling while the count is at or above the configured maximum. Unlike a
call-failure breaker there is no half-open state: the breaker closes again
as soon as old events age out of the window.
"""

import logging
from collections import deque
from datetime import datetime, timedelta

from src.scaling.config import BreakerConfig

logger = logging.getLogger(__name__)


class ScalingCircuitBreaker:
    """Sliding-window limit on scaling frequency."""

    def __init__(self, config: BreakerConfig | None = None):
        self.config = config or BreakerConfig()
        self._window = timedelta(seconds=self.config.window_seconds)
        self._events: deque[datetime] = deque()

    def can_scale(self, now: datetime) -> bool:
        """Whether another scaling action is allowed at ``now``."""
        return self.event_count(now) < self.config.max_events

    def record_event(self, now: datetime) -> None:
        """Record an applied scaling action."""
        self._prune(now)
        self._events.append(now)
        if len(self._events) >= self.config.max_events:
            logger.warning(
                "Scaling circuit breaker open: %d events in the last %.0fs",
                len(self._events), self.config.window_seconds,
            )

    def event_count(self, now: datetime) -> int:
        """Events currently inside the window."""
        self._prune(now)
        return len(self._events)

    def reopens_at(self, now: datetime) -> datetime | None:
        """When scaling will be allowed again, or None if it is allowed now."""
        if self.can_scale(now):
            return None
        # The oldest event that has to age out to drop below the limit
        excess = len(self._events) - self.config.max_events
        return self._events[excess] + self._window

    def reset(self) -> None:
        self._events.clear()

    def _prune(self, now: datetime) -> None:
        cutoff = now - self._window
        while self._events and self._events[0] <= cutoff:
            self._events.popleft()
