"""Autoscaling control loop."""

from src.control.loop import ControlLoop, TickOutcome, TickResult

__all__ = ["ControlLoop", "TickOutcome", "TickResult"]
