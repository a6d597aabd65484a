"""Unit tests for the scaling policy, governor, breaker and simulator modules."""

import json
from datetime import timedelta

import numpy as np
import pandas as pd
import pytest

from src.scaling.breaker import ScalingCircuitBreaker
from src.scaling.config import (
    AGGRESSIVE_GOVERNOR,
    BALANCED_GOVERNOR,
    CONSERVATIVE_GOVERNOR,
    AutoscalerConfig,
    BreakerConfig,
    GovernorConfig,
    GroupConfig,
    LoopConfig,
    load_config,
)
from src.scaling.errors import ConfigInvalid, SourceUnavailable
from src.scaling.governor import CooldownGovernor
from src.scaling.models import (
    AdmittedDelta,
    CapacityDelta,
    Rejected,
    RejectionReason,
    ScalingDirection,
)
from src.scaling.policy import (
    AdjustmentType,
    PolicyEvaluator,
    ScheduledPolicy,
    StepAdjustment,
    StepPolicy,
    TargetTrackingPolicy,
    policy_from_dict,
)
from src.scaling.simulator import ScalingSimulator, SimulationMetrics
from tests.helpers import T0, make_group, make_samples


def steps(*triples):
    return tuple(StepAdjustment(lo, hi, adj) for lo, hi, adj in triples)


class TestAutoscalerConfig:
    """Tests for configuration dataclasses."""

    def test_default_values(self):
        """Test default configuration values."""
        config = AutoscalerConfig()

        assert config.group.min_size == 1
        assert config.group.max_size == 20
        assert config.group.desired_capacity == 1
        assert config.governor.scale_out_cooldown_seconds == 300
        assert config.governor.max_scale_out_fraction == 0.5
        assert config.governor.max_scale_in_fraction == 0.25
        assert config.breaker.window_seconds == 3600
        assert config.breaker.max_events == 10
        assert config.policies == []

    def test_desired_capacity_defaults_to_min(self):
        assert GroupConfig(min_size=3, max_size=10).desired_capacity == 3

    def test_invalid_bounds(self):
        """Should reject max below min."""
        with pytest.raises(ConfigInvalid, match="max_size"):
            GroupConfig(min_size=5, max_size=2)

    def test_desired_outside_bounds(self):
        with pytest.raises(ConfigInvalid, match="desired_capacity"):
            GroupConfig(min_size=1, max_size=5, desired_capacity=6)

    def test_config_invalid_is_value_error(self):
        with pytest.raises(ValueError):
            GovernorConfig(max_scale_in_fraction=1.5)

    def test_invalid_breaker(self):
        with pytest.raises(ConfigInvalid):
            BreakerConfig(max_events=0)

    def test_duplicate_policy_names(self):
        with pytest.raises(ConfigInvalid, match="unique"):
            AutoscalerConfig(policies=[
                TargetTrackingPolicy(name="p", metric="cpu", target=50),
                TargetTrackingPolicy(name="p", metric="rps", target=100),
            ])

    def test_tick_interval_clamped_to_upper_bound(self):
        """Default cooldowns of 300s derive a 60s tick."""
        assert AutoscalerConfig().tick_interval_seconds == 60

    def test_tick_interval_clamped_to_lower_bound(self):
        config = AutoscalerConfig(policies=[
            TargetTrackingPolicy(name="fast", metric="cpu", target=50, scale_out_cooldown_seconds=10),
        ])
        assert config.tick_interval_seconds == 30

    def test_tick_interval_between_bounds(self):
        config = AutoscalerConfig(governor=GovernorConfig(scale_out_cooldown_seconds=45))
        assert config.tick_interval_seconds == 45

    def test_explicit_tick_interval(self):
        config = AutoscalerConfig(loop=LoopConfig(tick_interval_seconds=5))
        assert config.tick_interval_seconds == 5

    def test_metric_names(self):
        config = AutoscalerConfig(policies=[
            TargetTrackingPolicy(name="a", metric="cpu", target=50),
            StepPolicy(name="b", metric="latency", steps=steps((100, None, 1))),
            ScheduledPolicy(name="c", cron="0 8 * * *", min_size=2, max_size=5),
        ])
        assert config.metric_names == {"cpu", "latency"}

    def test_round_trip(self):
        """Config should survive to_dict/from_dict."""
        config = AutoscalerConfig(
            group=GroupConfig(name="api", min_size=2, max_size=8),
            policies=[
                TargetTrackingPolicy(name="cpu", metric="cpu", target=60, disable_scale_in=True),
                StepPolicy(
                    name="lat",
                    metric="latency",
                    steps=steps((None, 200, 0), (200, 500, 1), (500, None, 3)),
                ),
                ScheduledPolicy(name="day", cron="0 8 * * 1-5", min_size=4, max_size=8),
            ],
        )
        data = json.loads(json.dumps(config.to_dict()))

        assert AutoscalerConfig.from_dict(data) == config

    def test_from_dict_unknown_section(self):
        with pytest.raises(ConfigInvalid, match="unknown"):
            AutoscalerConfig.from_dict({"governer": {}})

    def test_from_dict_unknown_field(self):
        with pytest.raises(ConfigInvalid, match="governor"):
            AutoscalerConfig.from_dict({"governor": {"cooldown": 5}})

    def test_from_dict_unknown_policy_type(self):
        with pytest.raises(ConfigInvalid, match="policy type"):
            AutoscalerConfig.from_dict({"policies": [{"type": "predictive", "name": "x"}]})

    def test_load_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "group": {"min_size": 2, "max_size": 6},
            "policies": [{"type": "target_tracking", "name": "cpu", "metric": "cpu", "target": 50}],
        }))

        config = load_config(path)

        assert config.group.min_size == 2
        assert config.policies[0].target == 50

    def test_load_config_missing_file(self, tmp_path):
        with pytest.raises(ConfigInvalid, match="not found"):
            load_config(tmp_path / "missing.json")

    def test_load_config_bad_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigInvalid, match="not valid JSON"):
            load_config(path)

    def test_presets(self):
        """Presets order from slowest to fastest."""
        assert CONSERVATIVE_GOVERNOR.scale_out_cooldown_seconds > BALANCED_GOVERNOR.scale_out_cooldown_seconds
        assert BALANCED_GOVERNOR.scale_out_cooldown_seconds > AGGRESSIVE_GOVERNOR.scale_out_cooldown_seconds
        assert CONSERVATIVE_GOVERNOR.max_scale_out_fraction < AGGRESSIVE_GOVERNOR.max_scale_out_fraction


class TestPolicyDefinitions:
    """Tests for policy construction and validation."""

    def test_target_must_be_positive(self):
        with pytest.raises(ConfigInvalid, match="target"):
            TargetTrackingPolicy(name="p", metric="cpu", target=0)

    def test_overlapping_steps(self):
        with pytest.raises(ConfigInvalid, match="non-overlapping"):
            StepPolicy(name="p", metric="cpu", steps=steps((60, 80, 1), (70, 90, 2)))

    def test_unbounded_step_in_middle(self):
        with pytest.raises(ConfigInvalid, match="unbounded above"):
            StepPolicy(name="p", metric="cpu", steps=steps((60, None, 1), (80, 90, 2)))

    def test_empty_step_interval(self):
        with pytest.raises(ConfigInvalid, match="lower bound"):
            StepPolicy(name="p", metric="cpu", steps=steps((80, 80, 1)))

    def test_invalid_cron(self):
        with pytest.raises(ConfigInvalid, match="cron"):
            ScheduledPolicy(name="p", cron="every morning", min_size=1, max_size=2)

    def test_scheduled_bounds(self):
        with pytest.raises(ConfigInvalid):
            ScheduledPolicy(name="p", cron="0 8 * * *", min_size=5, max_size=2)

    def test_policy_from_dict_step_mappings(self):
        policy = policy_from_dict({
            "type": "step",
            "name": "lat",
            "metric": "latency",
            "adjustment_type": "percent_change_in_capacity",
            "steps": [{"lower_bound": 300, "adjustment": 50}],
        })

        assert isinstance(policy, StepPolicy)
        assert policy.adjustment_type == AdjustmentType.PERCENT_CHANGE_IN_CAPACITY
        assert policy.steps == (StepAdjustment(300, None, 50),)

    def test_policy_from_dict_bad_field(self):
        with pytest.raises(ConfigInvalid):
            policy_from_dict({"type": "target_tracking", "name": "p", "metric": "cpu", "target": 50, "foo": 1})

    def test_step_without_adjustment(self):
        """A step mapping missing its adjustment is a config error, not a KeyError."""
        with pytest.raises(ConfigInvalid, match="adjustment"):
            AutoscalerConfig.from_dict({
                "policies": [
                    {"type": "step", "name": "s", "metric": "cpu", "steps": [{"lower_bound": 0}]}
                ],
            })


class TestTargetTracking:
    """Tests for target tracking evaluation."""

    @pytest.fixture
    def policy(self):
        return TargetTrackingPolicy(name="cpu-target", metric="cpu", target=50.0)

    @pytest.mark.parametrize(
        "value,expected",
        [
            (50.0, 0),   # exactly at target
            (75.0, 5),   # 10 * 1.5 - 10
            (55.0, 1),   # 11.000000000000002 - 10 is treated as exactly 1
            (56.0, 2),   # 1.2 rounds up
            (40.0, -2),
            (33.0, -4),  # -3.4 rounds down
        ],
    )
    def test_delta(self, policy, value, expected):
        assert PolicyEvaluator.target_tracking_delta(policy, value, 10) == expected

    def test_disable_scale_in(self):
        policy = TargetTrackingPolicy(name="p", metric="cpu", target=50, disable_scale_in=True)

        assert PolicyEvaluator.target_tracking_delta(policy, 20.0, 10) == 0
        assert PolicyEvaluator.target_tracking_delta(policy, 75.0, 10) == 5

    def test_zero_capacity(self, policy):
        """From zero capacity only a single instance is requested."""
        assert PolicyEvaluator.target_tracking_delta(policy, 90.0, 0) == 1
        assert PolicyEvaluator.target_tracking_delta(policy, 40.0, 0) == 0

    def test_evaluate_carries_cooldowns(self):
        policy = TargetTrackingPolicy(
            name="p", metric="cpu", target=50,
            scale_out_cooldown_seconds=60, scale_in_cooldown_seconds=600,
        )
        delta = PolicyEvaluator().evaluate(policy, make_samples(cpu=75.0), make_group(current=10), T0)

        assert delta == CapacityDelta(
            delta=5, trigger="p", scale_out_cooldown_seconds=60, scale_in_cooldown_seconds=600
        )

    def test_missing_sample(self, policy):
        with pytest.raises(SourceUnavailable) as exc_info:
            PolicyEvaluator().evaluate(policy, {}, make_group(), T0)
        assert exc_info.value.metric == "cpu"


class TestStepPolicy:
    """Tests for step policy evaluation."""

    @pytest.fixture
    def policy(self):
        return StepPolicy(name="cpu-steps", metric="cpu", steps=steps((60, 75, 1), (75, 85, 2)))

    @pytest.mark.parametrize(
        "value,expected",
        [(80.0, 2), (60.0, 1), (75.0, 2), (74.9, 1), (50.0, 0), (85.0, 0), (99.0, 0)],
    )
    def test_delta(self, policy, value, expected):
        assert PolicyEvaluator.step_delta(policy, value, 10) == expected

    def test_unbounded_ends(self):
        policy = StepPolicy(
            name="p", metric="cpu", steps=steps((None, 20, -1), (20, 60, 0), (60, None, 3))
        )

        assert PolicyEvaluator.step_delta(policy, -5.0, 10) == -1
        assert PolicyEvaluator.step_delta(policy, 40.0, 10) == 0
        assert PolicyEvaluator.step_delta(policy, 1e6, 10) == 3

    def test_percent_change(self):
        policy = StepPolicy(
            name="p", metric="cpu",
            steps=steps((None, 30, -25), (70, None, 50)),
            adjustment_type=AdjustmentType.PERCENT_CHANGE_IN_CAPACITY,
        )

        assert PolicyEvaluator.step_delta(policy, 80.0, 10) == 5
        assert PolicyEvaluator.step_delta(policy, 80.0, 3) == 2
        assert PolicyEvaluator.step_delta(policy, 10.0, 10) == -3

    def test_exact_capacity(self):
        policy = StepPolicy(
            name="p", metric="cpu",
            steps=steps((80, None, 15)),
            adjustment_type="exact_capacity",
        )
        assert PolicyEvaluator.step_delta(policy, 90.0, 10) == 5


class TestScheduledPolicy:
    """Tests for scheduled policies. T0 is Monday 2024-01-01 12:00 UTC."""

    def test_last_fire_time(self):
        policy = ScheduledPolicy(name="morning", cron="0 8 * * *", min_size=5, max_size=20)
        assert policy.last_fire_time(T0) == T0.replace(hour=8)

    def test_fire_time_at_exact_minute(self):
        policy = ScheduledPolicy(name="noon", cron="0 12 * * *", min_size=5, max_size=20)
        assert policy.active_since(T0) == T0

    def test_duration_expires(self):
        policy = ScheduledPolicy(
            name="morning", cron="0 8 * * *", min_size=5, max_size=20, duration_seconds=3600
        )
        assert policy.active_since(T0) is None
        assert policy.active_since(T0.replace(hour=8, minute=30)) == T0.replace(hour=8)

    @pytest.mark.parametrize("current,expected", [(2, 3), (10, 0), (25, -5)])
    def test_delta_pins_capacity(self, current, expected):
        policy = ScheduledPolicy(name="s", cron="0 8 * * *", min_size=5, max_size=20)
        assert PolicyEvaluator.scheduled_delta(policy, current) == expected

    def test_latest_start_wins(self):
        early = ScheduledPolicy(name="early", cron="0 8 * * *", min_size=5, max_size=20)
        late = ScheduledPolicy(name="late", cron="0 11 * * *", min_size=1, max_size=3)

        assert PolicyEvaluator.active_schedule([early, late], T0) is late

        combined = PolicyEvaluator().evaluate_all([early, late], {}, make_group(current=10), T0)
        assert combined.delta == -7
        assert combined.trigger == "late"

    def test_inactive_schedule_does_not_propose(self):
        policy = ScheduledPolicy(
            name="s", cron="0 8 * * *", min_size=5, max_size=20, duration_seconds=60
        )
        assert PolicyEvaluator().evaluate(policy, {}, make_group(current=2), T0) is None


class TestPolicyCombination:
    """Tests for combining proposals from several policies."""

    @pytest.fixture
    def policies(self):
        return [
            TargetTrackingPolicy(name="cpu-target", metric="cpu", target=50),
            StepPolicy(name="latency-steps", metric="latency", steps=steps((None, 100, -1), (300, None, 2))),
        ]

    def test_scale_out_dominates(self, policies):
        samples = make_samples(cpu=33.0, latency=400.0)
        combined = PolicyEvaluator().evaluate_all(policies, samples, make_group(current=10), T0)

        assert combined.delta == 2
        assert combined.trigger == "latency-steps"

    def test_smallest_scale_in_wins(self, policies):
        samples = make_samples(cpu=33.0, latency=50.0)
        combined = PolicyEvaluator().evaluate_all(policies, samples, make_group(current=10), T0)

        assert combined.delta == -1

    def test_no_policies(self):
        combined = PolicyEvaluator().evaluate_all([], {}, make_group(), T0)
        assert combined == CapacityDelta(delta=0)


class TestCooldownGovernor:
    """Tests for the cooldown and velocity governor."""

    @pytest.fixture
    def governor(self):
        return CooldownGovernor(GovernorConfig(
            scale_out_cooldown_seconds=180,
            scale_in_cooldown_seconds=300,
            max_scale_out_fraction=0.5,
            max_scale_in_fraction=0.25,
        ))

    def test_zero_delta_changes_nothing(self, governor):
        group = make_group(current=10, desired=10)
        assert governor.admit(0, group, T0) == AdmittedDelta(delta=0, desired_capacity=10)

    def test_velocity_cap_scale_out(self, governor):
        """+20 at capacity 10 with fraction 0.5 admits +5."""
        verdict = governor.admit(CapacityDelta(20, "cpu"), make_group(current=10), T0)

        assert verdict == AdmittedDelta(delta=5, desired_capacity=15, trigger="cpu", capped=True)

    def test_small_scale_out_not_capped(self, governor):
        verdict = governor.admit(2, make_group(current=10), T0)
        assert verdict.delta == 2
        assert not verdict.capped

    def test_scale_out_from_zero(self, governor):
        verdict = governor.admit(3, make_group(current=0, desired=1), T0)
        assert verdict.delta == 1
        assert verdict.desired_capacity == 1

    def test_velocity_cap_scale_in(self, governor):
        verdict = governor.admit(-5, make_group(current=10), T0)
        assert verdict == AdmittedDelta(delta=-2, desired_capacity=8, capped=True)

    def test_scale_in_cap_rounds_to_zero(self, governor):
        verdict = governor.admit(-1, make_group(current=3), T0)

        assert isinstance(verdict, Rejected)
        assert verdict.reason == RejectionReason.VELOCITY_EXCEEDED

    def test_cooldown_rejects_then_admits(self, governor):
        """Cooldown of 180s: rejected 10s after a scale-out, admitted after 181s."""
        group = make_group(current=10, last_scale_out_at=T0)

        early = governor.admit(1, group, T0 + timedelta(seconds=10))
        late = governor.admit(1, group, T0 + timedelta(seconds=181))

        assert isinstance(early, Rejected)
        assert early.reason == RejectionReason.IN_COOLDOWN
        assert late == AdmittedDelta(delta=1, desired_capacity=11)

    def test_cooldown_boundary_is_exclusive(self, governor):
        group = make_group(current=10, last_scale_out_at=T0)
        assert isinstance(governor.admit(1, group, T0 + timedelta(seconds=180)), AdmittedDelta)

    def test_cooldowns_are_per_direction(self, governor):
        group = make_group(current=10, last_scale_out_at=T0)
        verdict = governor.admit(-2, group, T0 + timedelta(seconds=10))
        assert verdict.delta == -2

    def test_policy_cooldown_overrides_default(self, governor):
        group = make_group(current=10, last_scale_out_at=T0)
        delta = CapacityDelta(1, "fast", scale_out_cooldown_seconds=60)

        verdict = governor.admit(delta, group, T0 + timedelta(seconds=90))

        assert verdict.delta == 1

    def test_at_max_size(self, governor):
        group = make_group(current=20, max_size=20)
        assert governor.admit(3, group, T0) == AdmittedDelta(delta=0, desired_capacity=20)

    def test_at_min_size(self):
        governor = CooldownGovernor(GovernorConfig(max_scale_in_fraction=1.0))
        group = make_group(current=2, min_size=2)
        assert governor.admit(-1, group, T0) == AdmittedDelta(delta=0, desired_capacity=2)

    def test_scale_in_below_min_does_not_grow(self):
        """With capacity still below min, a scale-in must not turn into a scale-out."""
        governor = CooldownGovernor(GovernorConfig(max_scale_in_fraction=1.0))
        group = make_group(current=1, desired=3, min_size=3)

        verdict = governor.admit(-1, group, T0)

        assert verdict.delta == 0

    def test_desired_always_within_bounds(self, governor):
        """min <= desired <= max for every admitted delta."""
        for current in range(0, 25):
            for requested in range(-30, 31):
                group = make_group(current=current, desired=max(2, min(current, 20)), min_size=2, max_size=20)
                verdict = governor.admit(requested, group, T0)
                if isinstance(verdict, AdmittedDelta):
                    assert 2 <= verdict.desired_capacity <= 20
                    assert verdict.delta == 0 or (verdict.delta > 0) == (requested > 0)

    def test_cooldown_remaining(self, governor):
        group = make_group(current=10, last_scale_out_at=T0)
        remaining = governor.cooldown_remaining(group, T0 + timedelta(seconds=100))

        assert remaining == {"scale_out": 80.0, "scale_in": 0.0}


class TestScalingCircuitBreaker:
    """Tests for the sliding-window breaker."""

    @pytest.fixture
    def breaker(self):
        return ScalingCircuitBreaker(BreakerConfig(window_seconds=3600, max_events=10))

    def test_opens_at_max_events(self, breaker):
        """Ten events in the window block scaling until they age out."""
        for i in range(10):
            assert breaker.can_scale(T0 + timedelta(seconds=i))
            breaker.record_event(T0 + timedelta(seconds=i))

        assert not breaker.can_scale(T0 + timedelta(seconds=10))
        assert not breaker.can_scale(T0 + timedelta(seconds=3599))
        assert breaker.can_scale(T0 + timedelta(seconds=3600))

    def test_reopens_at(self, breaker):
        for i in range(10):
            breaker.record_event(T0 + timedelta(seconds=i))

        assert breaker.reopens_at(T0 + timedelta(seconds=20)) == T0 + timedelta(seconds=3600)
        assert breaker.reopens_at(T0 + timedelta(hours=2)) is None

    def test_event_count_prunes(self, breaker):
        breaker.record_event(T0)
        breaker.record_event(T0 + timedelta(minutes=30))

        assert breaker.event_count(T0 + timedelta(minutes=45)) == 2
        assert breaker.event_count(T0 + timedelta(minutes=61)) == 1

    def test_reset(self, breaker):
        for _ in range(10):
            breaker.record_event(T0)
        breaker.reset()
        assert breaker.can_scale(T0)


class TestScalingSimulator:
    """Tests for ScalingSimulator."""

    @pytest.fixture
    def config(self):
        return AutoscalerConfig(
            group=GroupConfig(name="sim", min_size=1, max_size=20, desired_capacity=2),
            governor=GovernorConfig(
                scale_out_cooldown_seconds=0,
                scale_in_cooldown_seconds=0,
                max_scale_out_fraction=1.0,
                max_scale_in_fraction=0.5,
            ),
            policies=[TargetTrackingPolicy(name="cpu-target", metric="cpu", target=50)],
        )

    def test_steady_load(self, config):
        simulator = ScalingSimulator(config, interval_seconds=60)
        result = simulator.simulate(pd.DataFrame({"cpu": [50.0] * 60}))

        assert isinstance(result, SimulationMetrics)
        assert result.scaling_events == 0
        assert result.capacity_over_time == [2] * 60
        assert result.instance_hours == pytest.approx(2.0)

    def test_sustained_overload_doubles_to_max(self, config):
        simulator = ScalingSimulator(config)
        result = simulator.simulate(pd.DataFrame({"cpu": [100.0] * 6}))

        assert result.capacity_over_time == [4, 8, 16, 20, 20, 20]
        assert result.scale_out_events == 4
        assert result.max_capacity == 20
        assert all(e.direction == ScalingDirection.OUT for e in result.events)

    def test_cooldowns_reject(self, config):
        simulator = ScalingSimulator(config, interval_seconds=60)
        result = simulator.simulate(
            pd.DataFrame({"cpu": [100.0] * 6}), governor_config=BALANCED_GOVERNOR
        )

        assert result.capacity_over_time == [3, 3, 3, 3, 3, 5]
        assert result.cooldown_rejections == 4
        assert result.capped_events == 2

    def test_circuit_breaker_limits_events(self, config):
        config.breaker = BreakerConfig(window_seconds=3600, max_events=2)
        simulator = ScalingSimulator(config)
        result = simulator.simulate(pd.DataFrame({"cpu": [100.0] * 6}))

        assert result.scaling_events == 2
        assert result.circuit_open_periods == 4

    def test_per_instance_metric(self, config):
        """A fleet-total metric is divided by capacity before evaluation."""
        simulator = ScalingSimulator(config, per_instance={"cpu"})
        result = simulator.simulate(pd.DataFrame({"cpu": [200.0] * 5}))

        # 200 / 2 = 100 per instance doubles to 4, then 50 per instance holds
        assert result.capacity_over_time == [4, 4, 4, 4, 4]

    def test_daily_pattern_stays_in_bounds(self, config, metrics_frame):
        result = ScalingSimulator(config, interval_seconds=300).simulate(metrics_frame)

        assert result.min_capacity >= 1
        assert result.max_capacity <= 20
        assert result.scale_out_events > 0
        assert result.scale_in_events > 0
        assert len(result.capacity_over_time) == len(metrics_frame)

    def test_timestamp_count_must_match_rows(self, config):
        simulator = ScalingSimulator(config)
        frame = pd.DataFrame({"cpu": [50.0, 60.0, 70.0]})

        with pytest.raises(ValueError, match="2 timestamps for 3"):
            simulator.simulate(frame, timestamps=[T0, T0 + timedelta(minutes=1)])

    def test_events_frame(self, config):
        result = ScalingSimulator(config).simulate(pd.DataFrame({"cpu": [100.0, 100.0]}))
        frame = result.events_frame()

        assert list(frame["new_capacity"]) == [4, 8]
        assert set(frame["direction"]) == {"out"}

    def test_compare_governors(self, config):
        simulator = ScalingSimulator(config)
        frame = pd.DataFrame({"cpu": np.linspace(30, 120, 30)})
        comparison = simulator.compare_governors(frame, {
            "conservative": CONSERVATIVE_GOVERNOR,
            "aggressive": AGGRESSIVE_GOVERNOR,
        })

        assert list(comparison.index) == ["conservative", "aggressive"]
        assert (
            comparison.loc["aggressive", "scaling_events"]
            >= comparison.loc["conservative", "scaling_events"]
        )
