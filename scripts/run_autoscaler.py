"""Run the autoscaler against local backends.

Two modes:
1. Replay: feed rows of a metrics CSV through the control loop, one row per
   tick, and print a summary of what the loop did
2. Serve: run the control loop on its interval behind the HTTP API

Exits with status 2 when the configuration is invalid.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import argparse
import asyncio
import logging
from datetime import timedelta

from src.audit.service import MemoryAuditSink, SqlAuditSink
from src.backends.local import (
    LocalHealthCheck,
    LocalLoadBalancer,
    LocalProvisioner,
    ReplayMetricsSource,
    StaticMetricsSource,
)
from src.control.loop import ControlLoop
from src.metrics.sampler import utcnow
from src.scaling.config import AutoscalerConfig, load_config
from src.scaling.errors import ConfigInvalid

logger = logging.getLogger("run_autoscaler")

EXIT_CONFIG_INVALID = 2


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run the fleet autoscaler locally")
    parser.add_argument("--config", type=Path, help="JSON configuration file")
    parser.add_argument("--metrics-csv", type=Path, help="Metrics to replay, one column per metric")
    parser.add_argument("--ticks", type=int, default=None, help="Number of ticks to run")
    parser.add_argument("--serve", action="store_true", help="Serve the HTTP API while running")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--db-url", default=None, help="Persist scaling events to this database")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def build_loop(config: AutoscalerConfig, metrics_source, audit_sink) -> ControlLoop:
    return ControlLoop.from_config(
        config,
        metrics_source=metrics_source,
        provisioner=LocalProvisioner(),
        load_balancer=LocalLoadBalancer(),
        health_check=LocalHealthCheck(),
        audit_sink=audit_sink,
    )


async def replay(loop: ControlLoop, source: ReplayMetricsSource, ticks: int | None) -> None:
    """One tick per metrics row, with simulated time between ticks."""
    interval = timedelta(seconds=loop.config.tick_interval_seconds)
    settle_timeout = loop.config.health_check.warmup_timeout_seconds
    total = ticks if ticks is not None else len(source.frame)
    start = utcnow()

    for i in range(total):
        result = await loop.tick(start + i * interval)
        print(
            f"  tick {i + 1:>4}: {result.outcome.value:<16} delta={result.delta:+d} "
            f"desired={loop.group.desired_capacity} current={loop.group.current_capacity}"
        )
        await loop.executor.wait_until_settled(timeout=settle_timeout)
        source.advance()


async def serve(loop: ControlLoop, host: str, port: int, ticks: int | None) -> None:
    import uvicorn

    from src.api.main import app, attach_control_loop

    attach_control_loop(loop, loop.audit_sink)
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="info"))
    runner = asyncio.create_task(loop.run(max_ticks=ticks))
    try:
        await server.serve()
    finally:
        runner.cancel()
        await asyncio.gather(runner, return_exceptions=True)
        attach_control_loop(None)


async def run(args, config: AutoscalerConfig) -> None:
    if args.metrics_csv is not None:
        source = ReplayMetricsSource.from_csv(args.metrics_csv)
    else:
        source = StaticMetricsSource({name: 0.0 for name in config.metric_names})

    audit_sink = SqlAuditSink(args.db_url) if args.db_url else MemoryAuditSink()
    loop = build_loop(config, source, audit_sink)

    try:
        if args.serve:
            await serve(loop, args.host, args.port, args.ticks)
        elif isinstance(source, ReplayMetricsSource):
            await replay(loop, source, args.ticks)
        else:
            await loop.run(max_ticks=args.ticks if args.ticks is not None else 1)
    finally:
        await loop.stop()

    print("\n" + "=" * 60)
    print("RUN COMPLETE")
    print("=" * 60)
    print(f"  Group: {loop.group.name}")
    print(f"  Desired capacity: {loop.group.desired_capacity}")
    print(f"  Scaling events: {len(loop.history)}")
    for outcome, count in sorted(loop.outcome_counts.items(), key=lambda kv: kv[0].value):
        print(f"  {outcome.value}: {count}")


def main(argv=None) -> int:
    """Load configuration and run the loop."""
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config) if args.config else AutoscalerConfig()
    except ConfigInvalid as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIG_INVALID

    print("=" * 60)
    print("FLEET AUTOSCALER")
    print("=" * 60)
    print(f"  Policies: {', '.join(p.name for p in config.policies) or '(none)'}")
    print(f"  Bounds: [{config.group.min_size}, {config.group.max_size}]")
    print(f"  Tick interval: {config.tick_interval_seconds:.0f}s\n")

    try:
        asyncio.run(run(args, config))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
