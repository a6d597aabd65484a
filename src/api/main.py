"""FastAPI application exposing the autoscaler's state."""

import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Annotated

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

from src.control.loop import ControlLoop
from src.scaling.errors import SourceUnavailable
from src.scaling.models import Rejected

logger = logging.getLogger(__name__)

MAX_METRIC_VALUE = 1e12
MAX_EVENTS_LIMIT = 1000


app = FastAPI(
    title="Fleet Autoscaler API",
    description="Status and control endpoints for the autoscaling control loop",
    version="1.0.0",
)


class GroupResponse(BaseModel):
    """Scaling group snapshot."""

    name: str
    min_size: int
    max_size: int
    desired_capacity: int
    current_capacity: int
    last_scale_out_at: datetime | None = None
    last_scale_in_at: datetime | None = None


class TickResponse(BaseModel):
    """Result of a tick."""

    outcome: str
    timestamp: datetime
    delta: int
    reason: str
    group: GroupResponse


class InstanceResponse(BaseModel):
    id: str
    state: str
    launched_at: datetime
    address: str | None = None
    in_service_at: datetime | None = None


class EvaluateRequest(BaseModel):
    """Request body for the dry-run evaluation endpoint."""

    metrics: dict[str, float] = Field(
        ...,
        description="Metric values keyed by metric name",
    )

    @field_validator("metrics")
    @classmethod
    def validate_metrics(cls, v: dict[str, float]) -> dict[str, float]:
        """Validate that metric values are finite and within bounds."""
        for name, val in v.items():
            if val != val or abs(val) > MAX_METRIC_VALUE:
                raise ValueError(f"Metric '{name}' must be a finite value below {MAX_METRIC_VALUE}")
        return v


class EvaluateResponse(BaseModel):
    """Response body for the dry-run evaluation endpoint."""

    proposed_delta: int
    trigger: str
    admitted: bool
    admitted_delta: int
    desired_capacity: int | None = None
    rejection_reason: str | None = None
    capped: bool = False


# Application state
_state_lock = Lock()

_state: dict = {
    "loop": None,
    "audit_sink": None,
}


def attach_control_loop(loop: ControlLoop | None, audit_sink=None) -> None:
    """Make a control loop (and optionally its audit sink) visible to the API."""
    with _state_lock:
        _state["loop"] = loop
        _state["audit_sink"] = audit_sink


def _get_loop() -> ControlLoop:
    with _state_lock:
        loop = _state["loop"]
    if loop is None:
        raise HTTPException(status_code=503, detail="No control loop attached")
    return loop


def _group_response(loop: ControlLoop) -> GroupResponse:
    return GroupResponse(**loop.group.to_dict())


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Fleet Autoscaler API",
        "version": "1.0.0",
        "endpoints": {
            "status": "GET /status",
            "instances": "GET /instances",
            "events": "GET /events?limit=50",
            "config": "GET /config",
            "tick": "POST /tick",
            "evaluate": "POST /evaluate",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    with _state_lock:
        attached = _state["loop"] is not None
    return {
        "status": "healthy",
        "loop_attached": attached,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/status")
async def get_status():
    """Get current scaling status."""
    return _get_loop().status()


@app.get("/instances", response_model=list[InstanceResponse])
async def list_instances():
    """List instances the executor is tracking."""
    loop = _get_loop()
    return [InstanceResponse(**i.to_dict()) for i in loop.executor.instances()]


@app.get("/events")
def list_events(
    limit: Annotated[int, Query(ge=1, le=MAX_EVENTS_LIMIT)] = 50,
    direction: Annotated[str | None, Query(pattern="^(out|in)$")] = None,
):
    """List recent scaling events, newest first.

    Reads the audit sink when one is attached, otherwise the loop's
    in-memory history. Declared sync so the blocking sink query runs in
    FastAPI's threadpool.
    """
    loop = _get_loop()
    with _state_lock:
        sink = _state["audit_sink"]

    if sink is not None and hasattr(sink, "list_events"):
        events = sink.list_events(limit=limit, direction=direction)
    else:
        events = [e.to_dict() for e in reversed(loop.history)]
        if direction:
            events = [e for e in events if e["direction"] == direction]
        events = events[:limit]
    return {"count": len(events), "events": events}


@app.get("/config")
async def get_config():
    """Get the loaded configuration."""
    loop = _get_loop()
    return {
        "config": loop.config.to_dict(),
        "tick_interval_seconds": loop.config.tick_interval_seconds,
    }


@app.post("/tick", response_model=TickResponse)
async def run_tick():
    """Run one tick immediately."""
    loop = _get_loop()
    result = await loop.tick()
    logger.info("Manual tick: outcome=%s delta=%+d", result.outcome.value, result.delta)
    return TickResponse(
        outcome=result.outcome.value,
        timestamp=result.timestamp,
        delta=result.delta,
        reason=result.reason,
        group=_group_response(loop),
    )


@app.post("/evaluate", response_model=EvaluateResponse)
async def evaluate(request: EvaluateRequest):
    """Dry-run the policies and governor for given metric values.

    Does not change any state.
    """
    loop = _get_loop()
    try:
        proposal, verdict = loop.dry_run(request.metrics)
    except SourceUnavailable as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if isinstance(verdict, Rejected):
        return EvaluateResponse(
            proposed_delta=proposal.delta,
            trigger=proposal.trigger,
            admitted=False,
            admitted_delta=0,
            rejection_reason=verdict.reason.value,
        )
    return EvaluateResponse(
        proposed_delta=proposal.delta,
        trigger=proposal.trigger,
        admitted=True,
        admitted_delta=verdict.delta,
        desired_capacity=verdict.desired_capacity,
        capped=verdict.capped,
    )


def run_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the FastAPI server with uvicorn."""
    import uvicorn

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        timeout_graceful_shutdown=5,
    )


if __name__ == "__main__":
    run_server()
