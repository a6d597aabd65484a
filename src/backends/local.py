"""In-process collaborators.

These stand in for a real metrics backend, cloud provisioner, load
balancer and health endpoint when running locally, in simulations and in
tests.
"""

import itertools
import logging
from pathlib import Path

import numpy as np
import pandas as pd

from src.lifecycle.interfaces import HealthStatus

logger = logging.getLogger(__name__)


class StaticMetricsSource:
    """Return whatever value was last set for a metric."""

    def __init__(self, values: dict[str, float] | None = None):
        self.values: dict[str, float] = dict(values or {})
        self.unavailable: set[str] = set()
        self.calls = 0

    def set(self, name: str, value: float) -> None:
        self.values[name] = value

    def get_metric(self, name: str, window_seconds: float) -> list[float]:
        self.calls += 1
        if name in self.unavailable:
            raise ConnectionError(f"metrics backend unreachable for {name}")
        if name not in self.values:
            return []
        return [self.values[name]]


class ReplayMetricsSource:
    """Replay metric rows from a DataFrame, one row per ``advance``.

    Each column is a metric. The current row is served until ``advance`` is
    called; past the last row the final row repeats.
    """

    def __init__(self, frame: pd.DataFrame):
        if frame.empty:
            raise ValueError("metrics frame is empty")
        self.frame = frame.reset_index(drop=True)
        self.position = 0

    @classmethod
    def from_csv(cls, path: str | Path, timestamp_column: str | None = "timestamp") -> "ReplayMetricsSource":
        frame = pd.read_csv(path)
        if timestamp_column and timestamp_column in frame.columns:
            frame = frame.sort_values(timestamp_column).drop(columns=[timestamp_column])
        return cls(frame.select_dtypes(include=[np.number]))

    @property
    def exhausted(self) -> bool:
        return self.position >= len(self.frame) - 1

    def advance(self) -> None:
        if not self.exhausted:
            self.position += 1

    def get_metric(self, name: str, window_seconds: float) -> list[float]:
        if name not in self.frame.columns:
            raise KeyError(f"unknown metric '{name}'")
        return [float(self.frame.at[self.position, name])]


class LocalProvisioner:
    """Hand out instance ids; optionally fail a number of launches."""

    def __init__(self, prefix: str = "i-"):
        self.prefix = prefix
        self._ids = itertools.count(1)
        self.launched: list[str] = []
        self.terminated: list[str] = []
        self.fail_launches = 0

    async def launch(self, spec: dict) -> str:
        if self.fail_launches > 0:
            self.fail_launches -= 1
            raise RuntimeError("insufficient capacity")
        instance_id = f"{self.prefix}{next(self._ids):05d}"
        self.launched.append(instance_id)
        return instance_id

    async def terminate(self, instance_id: str) -> None:
        if instance_id not in self.terminated:
            self.terminated.append(instance_id)

    async def address(self, instance_id: str) -> str:
        return f"10.0.0.{int(instance_id[len(self.prefix):]) % 250 + 2}:8080"


class LocalLoadBalancer:
    """Track registrations in memory."""

    def __init__(self):
        self.targets: dict[str, str] = {}
        self.ever_registered: set[str] = set()

    async def register(self, instance_id: str, address: str) -> None:
        self.targets[instance_id] = address
        self.ever_registered.add(instance_id)

    async def deregister(self, instance_id: str) -> None:
        self.targets.pop(instance_id, None)


class LocalHealthCheck:
    """Healthy by default; individual instances can be marked unhealthy."""

    def __init__(self, default: HealthStatus = HealthStatus.HEALTHY):
        self.default = default
        self.overrides: dict[str, HealthStatus] = {}

    def mark(self, instance_id: str, status: HealthStatus) -> None:
        self.overrides[instance_id] = status

    async def check(self, instance_id: str) -> HealthStatus:
        return self.overrides.get(instance_id, self.default)
