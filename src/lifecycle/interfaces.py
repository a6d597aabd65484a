"""Protocols for the external collaborators the executor drives."""

from enum import Enum
from typing import Protocol


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class InstanceProvisioner(Protocol):
    """Launches and terminates instances. Assumed safe to retry."""

    async def launch(self, spec: dict) -> str:
        ...

    async def terminate(self, instance_id: str) -> None:
        ...

    async def address(self, instance_id: str) -> str:
        ...


class LoadBalancer(Protocol):
    """Service registry that routes traffic to in-service instances."""

    async def register(self, instance_id: str, address: str) -> None:
        ...

    async def deregister(self, instance_id: str) -> None:
        ...


class HealthCheck(Protocol):
    async def check(self, instance_id: str) -> HealthStatus:
        ...
