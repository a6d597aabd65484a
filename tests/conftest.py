"""Pytest configuration and shared fixtures."""

import numpy as np
import pandas as pd
import pytest

from src.backends.local import (
    LocalHealthCheck,
    LocalLoadBalancer,
    LocalProvisioner,
    StaticMetricsSource,
)
from src.scaling.config import (
    AutoscalerConfig,
    BreakerConfig,
    ExecutorConfig,
    GovernorConfig,
    GroupConfig,
    HealthCheckConfig,
    LoopConfig,
    SamplerConfig,
)
from src.scaling.policy import TargetTrackingPolicy
from tests.helpers import T0, FakeClock


@pytest.fixture
def now():
    return T0


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fast_health_config():
    """Health checks that settle within a few milliseconds."""
    return HealthCheckConfig(
        interval_seconds=0.005,
        healthy_threshold=1,
        unhealthy_threshold=2,
        warmup_timeout_seconds=2.0,
    )


@pytest.fixture
def fast_executor_config():
    return ExecutorConfig(
        launch_retries=2,
        launch_backoff_seconds=0.001,
        launch_backoff_factor=2.0,
        drain_timeout_seconds=0.5,
        hook_timeout_seconds=0.5,
    )


@pytest.fixture
def autoscaler_config(fast_health_config, fast_executor_config):
    """Config with one CPU target tracking policy and fast lifecycle timings."""
    return AutoscalerConfig(
        group=GroupConfig(name="web", min_size=2, max_size=20, desired_capacity=2),
        governor=GovernorConfig(
            scale_out_cooldown_seconds=180,
            scale_in_cooldown_seconds=300,
            max_scale_out_fraction=0.5,
            max_scale_in_fraction=0.25,
        ),
        breaker=BreakerConfig(window_seconds=3600, max_events=10),
        health_check=fast_health_config,
        executor=fast_executor_config,
        sampler=SamplerConfig(timeout_seconds=0.5),
        loop=LoopConfig(tick_interval_seconds=30),
        policies=[TargetTrackingPolicy(name="cpu-target", metric="cpu", target=50.0)],
    )


@pytest.fixture
def metrics_source():
    return StaticMetricsSource({"cpu": 50.0})


@pytest.fixture
def provisioner():
    return LocalProvisioner()


@pytest.fixture
def load_balancer():
    return LocalLoadBalancer()


@pytest.fixture
def health_check():
    return LocalHealthCheck()


@pytest.fixture
def metrics_frame():
    """Daily load pattern sampled every 5 minutes."""
    n_periods = 288
    hours = np.arange(n_periods) * 5 / 60
    cpu = 40 + 35 * np.sin(np.pi * (hours - 6) / 12)
    return pd.DataFrame({"cpu": np.clip(cpu, 5, 100)})
