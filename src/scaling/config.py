"""Configuration for the autoscaler."""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path

from src.scaling.errors import ConfigInvalid
from src.scaling.models import ScalingGroup
from src.scaling.policy import Policy, policy_from_dict


@dataclass
class GroupConfig:
    """Capacity bounds of the scaling group.

    Attributes:
        name: Group name (used in logs and audit records)
        min_size: Minimum number of instances (cannot scale below)
        max_size: Maximum number of instances (cannot scale above)
        desired_capacity: Initial desired capacity (defaults to min_size)
    """

    name: str = "default"
    min_size: int = 1
    max_size: int = 20
    desired_capacity: int | None = None

    def __post_init__(self):
        if self.desired_capacity is None:
            self.desired_capacity = self.min_size
        self._validate()

    def _validate(self):
        if self.min_size < 0:
            raise ConfigInvalid("min_size must be >= 0")
        if self.max_size < self.min_size:
            raise ConfigInvalid("max_size must be >= min_size")
        if not self.min_size <= self.desired_capacity <= self.max_size:
            raise ConfigInvalid("desired_capacity must be within [min_size, max_size]")

    def build_group(self, current_capacity: int = 0) -> ScalingGroup:
        """Create the initial group snapshot."""
        return ScalingGroup(
            name=self.name,
            min_size=self.min_size,
            max_size=self.max_size,
            desired_capacity=self.desired_capacity,
            current_capacity=current_capacity,
        )


@dataclass
class GovernorConfig:
    """Cooldown and velocity limits.

    Attributes:
        scale_out_cooldown_seconds: Default wait after a scale-out
        scale_in_cooldown_seconds: Default wait after a scale-in
        max_scale_out_fraction: Largest scale-out as a fraction of capacity
        max_scale_in_fraction: Largest scale-in as a fraction of capacity
    """

    scale_out_cooldown_seconds: float = 300.0
    scale_in_cooldown_seconds: float = 300.0
    max_scale_out_fraction: float = 0.5
    max_scale_in_fraction: float = 0.25

    def __post_init__(self):
        if self.scale_out_cooldown_seconds < 0:
            raise ConfigInvalid("scale_out_cooldown_seconds must be >= 0")
        if self.scale_in_cooldown_seconds < 0:
            raise ConfigInvalid("scale_in_cooldown_seconds must be >= 0")
        if not 0 < self.max_scale_out_fraction:
            raise ConfigInvalid("max_scale_out_fraction must be > 0")
        if not 0 < self.max_scale_in_fraction <= 1:
            raise ConfigInvalid("max_scale_in_fraction must be between 0 and 1")


@dataclass
class BreakerConfig:
    """Scaling circuit breaker.

    Attributes:
        window_seconds: Sliding window length
        max_events: Events in the window at which scaling is suppressed
    """

    window_seconds: float = 3600.0
    max_events: int = 10

    def __post_init__(self):
        if self.window_seconds <= 0:
            raise ConfigInvalid("window_seconds must be > 0")
        if self.max_events < 1:
            raise ConfigInvalid("max_events must be at least 1")


@dataclass
class HealthCheckConfig:
    """Health check polling policy."""

    interval_seconds: float = 10.0
    healthy_threshold: int = 2
    unhealthy_threshold: int = 3
    warmup_timeout_seconds: float = 600.0

    def __post_init__(self):
        if self.interval_seconds <= 0:
            raise ConfigInvalid("interval_seconds must be > 0")
        if self.healthy_threshold < 1:
            raise ConfigInvalid("healthy_threshold must be at least 1")
        if self.unhealthy_threshold < 1:
            raise ConfigInvalid("unhealthy_threshold must be at least 1")
        if self.warmup_timeout_seconds <= 0:
            raise ConfigInvalid("warmup_timeout_seconds must be > 0")


@dataclass
class ExecutorConfig:
    """Instance launch and drain behaviour.

    Attributes:
        launch_retries: Retries after the first failed launch attempt
        launch_backoff_seconds: Delay before the first retry
        launch_backoff_factor: Multiplier applied to the delay per retry
        drain_timeout_seconds: Bound on pre-termination hooks
        hook_timeout_seconds: Bound on each pre-service hook
        launch_spec: Opaque spec handed to the provisioner
    """

    launch_retries: int = 3
    launch_backoff_seconds: float = 1.0
    launch_backoff_factor: float = 2.0
    drain_timeout_seconds: float = 300.0
    hook_timeout_seconds: float = 120.0
    launch_spec: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.launch_retries < 0:
            raise ConfigInvalid("launch_retries must be >= 0")
        if self.launch_backoff_seconds < 0:
            raise ConfigInvalid("launch_backoff_seconds must be >= 0")
        if self.launch_backoff_factor < 1:
            raise ConfigInvalid("launch_backoff_factor must be >= 1")
        if self.drain_timeout_seconds <= 0:
            raise ConfigInvalid("drain_timeout_seconds must be > 0")
        if self.hook_timeout_seconds <= 0:
            raise ConfigInvalid("hook_timeout_seconds must be > 0")


@dataclass
class SamplerConfig:
    """Metric sampling.

    Attributes:
        timeout_seconds: Bound on each metric fetch
        window_seconds: Look-back window requested from the source
        statistic: Reduction applied to the returned series
    """

    timeout_seconds: float = 5.0
    window_seconds: float = 60.0
    statistic: str = "average"

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ConfigInvalid("timeout_seconds must be > 0")
        if self.window_seconds <= 0:
            raise ConfigInvalid("window_seconds must be > 0")
        if self.statistic not in ("average", "maximum", "minimum", "latest"):
            raise ConfigInvalid(f"unknown statistic '{self.statistic}'")


@dataclass
class LoopConfig:
    """Control loop timing.

    Attributes:
        tick_interval_seconds: Fixed tick interval; derived from cooldowns if None
        history_size: Scaling events kept in memory
    """

    tick_interval_seconds: float | None = None
    history_size: int = 1000

    def __post_init__(self):
        if self.tick_interval_seconds is not None and self.tick_interval_seconds <= 0:
            raise ConfigInvalid("tick_interval_seconds must be > 0")
        if self.history_size < 1:
            raise ConfigInvalid("history_size must be at least 1")


MIN_DERIVED_TICK_SECONDS = 30.0
MAX_DERIVED_TICK_SECONDS = 60.0


@dataclass
class AutoscalerConfig:
    """Complete autoscaler configuration, loaded once at startup."""

    group: GroupConfig = field(default_factory=GroupConfig)
    governor: GovernorConfig = field(default_factory=GovernorConfig)
    breaker: BreakerConfig = field(default_factory=BreakerConfig)
    health_check: HealthCheckConfig = field(default_factory=HealthCheckConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    policies: list[Policy] = field(default_factory=list)

    def __post_init__(self):
        names = [p.name for p in self.policies]
        if len(names) != len(set(names)):
            raise ConfigInvalid("policy names must be unique")

    @property
    def tick_interval_seconds(self) -> float:
        """Tick interval, derived from the fastest cooldown when not set.

        The fastest cooldown is clamped into [30, 60] seconds.
        """
        if self.loop.tick_interval_seconds is not None:
            return self.loop.tick_interval_seconds

        cooldowns = [
            self.governor.scale_out_cooldown_seconds,
            self.governor.scale_in_cooldown_seconds,
        ]
        for policy in self.policies:
            cooldowns.extend(
                c for c in (
                    getattr(policy, "scale_out_cooldown_seconds", None),
                    getattr(policy, "scale_in_cooldown_seconds", None),
                ) if c is not None
            )
        fastest = min(cooldowns)
        return max(MIN_DERIVED_TICK_SECONDS, min(fastest, MAX_DERIVED_TICK_SECONDS))

    @property
    def metric_names(self) -> set[str]:
        """Names of every metric some policy needs."""
        return {p.metric for p in self.policies if getattr(p, "metric", None)}

    def to_dict(self) -> dict:
        """Convert config to dictionary.

        Returns:
            Configuration as a JSON-serialisable dictionary
        """
        return {
            "group": asdict(self.group),
            "governor": asdict(self.governor),
            "breaker": asdict(self.breaker),
            "health_check": asdict(self.health_check),
            "executor": asdict(self.executor),
            "sampler": asdict(self.sampler),
            "loop": asdict(self.loop),
            "policies": [p.to_dict() for p in self.policies],
        }

    @classmethod
    def from_dict(cls, config_dict: dict) -> "AutoscalerConfig":
        """Create config from dictionary.

        Args:
            config_dict: Configuration dictionary

        Returns:
            AutoscalerConfig instance

        Raises:
            ConfigInvalid: On unknown keys, bad types or failed validation
        """
        if not isinstance(config_dict, dict):
            raise ConfigInvalid("configuration must be a mapping")

        sections = {
            "group": GroupConfig,
            "governor": GovernorConfig,
            "breaker": BreakerConfig,
            "health_check": HealthCheckConfig,
            "executor": ExecutorConfig,
            "sampler": SamplerConfig,
            "loop": LoopConfig,
        }
        unknown = set(config_dict) - set(sections) - {"policies"}
        if unknown:
            raise ConfigInvalid(f"unknown configuration sections: {sorted(unknown)}")

        kwargs = {}
        for key, section_cls in sections.items():
            values = config_dict.get(key, {})
            if not isinstance(values, dict):
                raise ConfigInvalid(f"section '{key}' must be a mapping")
            try:
                kwargs[key] = section_cls(**values)
            except TypeError as e:
                raise ConfigInvalid(f"section '{key}': {e}") from e

        policies = config_dict.get("policies", [])
        if not isinstance(policies, list):
            raise ConfigInvalid("'policies' must be a list")
        kwargs["policies"] = [policy_from_dict(p) for p in policies]

        return cls(**kwargs)


def load_config(path: str | Path) -> AutoscalerConfig:
    """Load configuration from a JSON file.

    Args:
        path: Path to the JSON configuration

    Returns:
        Validated AutoscalerConfig

    Raises:
        ConfigInvalid: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text())
    except FileNotFoundError as e:
        raise ConfigInvalid(f"config file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigInvalid(f"config file {path} is not valid JSON: {e}") from e
    return AutoscalerConfig.from_dict(raw)


# Predefined governor settings
CONSERVATIVE_GOVERNOR = GovernorConfig(
    scale_out_cooldown_seconds=600,
    scale_in_cooldown_seconds=900,
    max_scale_out_fraction=0.25,
    max_scale_in_fraction=0.1,
)

BALANCED_GOVERNOR = GovernorConfig(
    scale_out_cooldown_seconds=300,
    scale_in_cooldown_seconds=300,
    max_scale_out_fraction=0.5,
    max_scale_in_fraction=0.25,
)

AGGRESSIVE_GOVERNOR = GovernorConfig(
    scale_out_cooldown_seconds=60,
    scale_in_cooldown_seconds=180,
    max_scale_out_fraction=1.0,
    max_scale_in_fraction=0.5,
)
