"""Shared test helpers."""

from datetime import datetime, timedelta, timezone

from src.scaling.models import MetricSample, ScalingGroup

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for deterministic timestamps."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


def make_group(
    current: int = 10,
    desired: int | None = None,
    min_size: int = 1,
    max_size: int = 50,
    **kwargs,
) -> ScalingGroup:
    """Group snapshot with sensible defaults."""
    return ScalingGroup(
        name=kwargs.pop("name", "web"),
        min_size=min_size,
        max_size=max_size,
        desired_capacity=desired if desired is not None else current,
        current_capacity=current,
        **kwargs,
    )


def make_samples(now: datetime = T0, **values) -> dict[str, MetricSample]:
    return {
        name: MetricSample(name=name, value=value, timestamp=now)
        for name, value in values.items()
    }
