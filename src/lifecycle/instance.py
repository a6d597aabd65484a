"""Instance lifecycle state machine."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from src.scaling.errors import InvalidTransition

logger = logging.getLogger(__name__)


class InstanceState(str, Enum):
    """Lifecycle state of a single instance."""

    PENDING = "pending"
    WARMING = "warming"
    IN_SERVICE = "in_service"
    DRAINING = "draining"
    TERMINATED = "terminated"


ALLOWED_TRANSITIONS: dict[InstanceState, frozenset[InstanceState]] = {
    InstanceState.PENDING: frozenset({InstanceState.WARMING, InstanceState.TERMINATED}),
    InstanceState.WARMING: frozenset({
        InstanceState.IN_SERVICE,
        InstanceState.DRAINING,
        InstanceState.TERMINATED,
    }),
    InstanceState.IN_SERVICE: frozenset({InstanceState.DRAINING}),
    InstanceState.DRAINING: frozenset({InstanceState.TERMINATED}),
    InstanceState.TERMINATED: frozenset(),
}

IN_FLIGHT_STATES = frozenset({InstanceState.PENDING, InstanceState.WARMING})


@dataclass
class Instance:
    """A launched instance and where it is in its lifecycle.

    Only the lifecycle task that owns the instance calls ``transition``.
    """

    id: str
    state: InstanceState
    launched_at: datetime
    address: str | None = None
    in_service_at: datetime | None = None
    terminated_at: datetime | None = None
    termination_requested: bool = False

    def transition(self, new_state: InstanceState, now: datetime) -> None:
        """Move to ``new_state``.

        Raises:
            InvalidTransition: If the state machine does not allow the move
        """
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(self.id, self.state, new_state)

        logger.info("Instance %s: %s -> %s", self.id, self.state.value, new_state.value)
        self.state = new_state
        if new_state == InstanceState.IN_SERVICE:
            self.in_service_at = now
        elif new_state == InstanceState.TERMINATED:
            self.terminated_at = now

    @property
    def is_in_flight(self) -> bool:
        return self.state in IN_FLIGHT_STATES

    def snapshot(self) -> "Instance":
        """Copy safe to hand out to readers."""
        return replace(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "state": self.state.value,
            "launched_at": self.launched_at,
            "address": self.address,
            "in_service_at": self.in_service_at,
            "terminated_at": self.terminated_at,
        }
