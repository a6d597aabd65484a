"""Error taxonomy for the autoscaler."""


class AutoscalerError(Exception):
    """Base class for all autoscaler errors."""


class ConfigInvalid(AutoscalerError, ValueError):
    """Raised when configuration is malformed. Fatal at startup only."""


class SourceUnavailable(AutoscalerError):
    """Raised when the metrics source cannot deliver a usable value."""

    def __init__(self, metric: str, reason: str):
        self.metric = metric
        self.reason = reason
        super().__init__(f"Metric '{metric}' unavailable: {reason}")


class LaunchFailed(AutoscalerError):
    """Raised when instance launches fail after all retries."""

    def __init__(self, attempts: int, reason: str):
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Launch failed after {attempts} attempts: {reason}")


class DrainTimeout(AutoscalerError):
    """Raised when connection draining exceeds its timeout."""

    def __init__(self, instance_id: str, timeout_seconds: float):
        self.instance_id = instance_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Instance {instance_id} did not drain within {timeout_seconds:.0f}s"
        )


class InvalidTransition(AutoscalerError):
    """Raised on a lifecycle transition the state machine does not allow."""

    def __init__(self, instance_id: str, old_state, new_state):
        self.instance_id = instance_id
        self.old_state = old_state
        self.new_state = new_state
        super().__init__(
            f"Instance {instance_id}: {old_state.value} -> {new_state.value} not allowed"
        )
