"""Metric sampling with bounded timeouts.

The sampler pulls a short series per metric from a pluggable source and
reduces it to a point value. Any failure is reported as SourceUnavailable
so the caller can skip its decision instead of acting on missing data.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Callable, Protocol, Sequence

import numpy as np

from src.scaling.config import SamplerConfig
from src.scaling.errors import SourceUnavailable
from src.scaling.models import MetricSample

logger = logging.getLogger(__name__)


class MetricsSource(Protocol):
    """External metrics backend (CloudWatch-like, Prometheus-like).

    ``get_metric`` may be a plain or a coroutine function.
    """

    def get_metric(self, name: str, window_seconds: float) -> Sequence[float]:
        ...


_REDUCERS: dict[str, Callable[[np.ndarray], float]] = {
    "average": lambda values: float(np.mean(values)),
    "maximum": lambda values: float(np.max(values)),
    "minimum": lambda values: float(np.min(values)),
    "latest": lambda values: float(values[-1]),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetricSampler:
    """Fetch current values for named metrics.

    Example:
        >>> sampler = MetricSampler(source, SamplerConfig(timeout_seconds=2))
        >>> samples = await sampler.sample({"cpu", "request_rate"})
        >>> samples["cpu"].value
        63.5
    """

    def __init__(
        self,
        source: MetricsSource,
        config: SamplerConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize sampler.

        Args:
            source: Metrics backend
            config: Sampling configuration
            clock: Time source for sample timestamps
        """
        self.source = source
        self.config = config or SamplerConfig()
        self.clock = clock
        self._reduce = _REDUCERS[self.config.statistic]

    async def sample(self, metric_names: set[str] | list[str]) -> dict[str, MetricSample]:
        """Sample every requested metric.

        Metrics are fetched concurrently; the first failure fails the whole
        call.

        Args:
            metric_names: Names of the metrics to fetch

        Returns:
            Mapping from metric name to MetricSample

        Raises:
            SourceUnavailable: If any metric cannot be fetched in time
        """
        names = sorted(set(metric_names))
        if not names:
            return {}

        values = await asyncio.gather(*(self._fetch(name) for name in names))
        timestamp = self.clock()
        return {
            name: MetricSample(name=name, value=value, timestamp=timestamp)
            for name, value in zip(names, values)
        }

    async def _fetch(self, name: str) -> float:
        try:
            series = await asyncio.wait_for(
                self._call_source(name),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise SourceUnavailable(
                name, f"timed out after {self.config.timeout_seconds:.1f}s"
            ) from e
        except SourceUnavailable:
            raise
        except Exception as e:
            raise SourceUnavailable(name, str(e) or type(e).__name__) from e

        values = np.asarray(list(series) if series is not None else [], dtype=float)
        if values.size == 0:
            raise SourceUnavailable(name, "empty series")
        values = values[~np.isnan(values)]
        if values.size == 0:
            raise SourceUnavailable(name, "series contains only NaN")

        return self._reduce(values)

    async def _call_source(self, name: str):
        getter = self.source.get_metric
        if inspect.iscoroutinefunction(getter):
            return await getter(name, self.config.window_seconds)
        return await asyncio.to_thread(getter, name, self.config.window_seconds)
