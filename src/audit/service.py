"""Audit sinks for scaling events.

Provides an append-only SQL-backed sink plus query helpers, and an
in-memory sink for tests and local runs.
"""

import threading

from sqlalchemy import desc, func

from src.audit.models import (
    DEFAULT_DB_URL,
    ScalingEventRecord,
    create_db_engine,
    get_session,
)
from src.scaling.models import ScalingEvent


class SqlAuditSink:
    """Persist scaling events through SQLAlchemy.

    Example:
        sink = SqlAuditSink("sqlite:///events.db")
        sink.log(event)
        recent = sink.list_events(limit=10)
    """

    def __init__(self, db_url: str = DEFAULT_DB_URL):
        """Initialize sink with database connection.

        Args:
            db_url: Database URL (defaults to SQLite in DATA folder)
        """
        self.engine = create_db_engine(db_url)

    def log(self, event: ScalingEvent) -> int:
        """Append a scaling event.

        Args:
            event: Event to persist

        Returns:
            ID of the stored record
        """
        session = get_session(self.engine)
        try:
            record = ScalingEventRecord(
                group_name=event.group,
                timestamp=event.timestamp,
                direction=event.direction.value,
                magnitude=event.magnitude,
                trigger=event.trigger,
                old_capacity=event.old_capacity,
                new_capacity=event.new_capacity,
            )
            session.add(record)
            session.commit()
            return record.id
        finally:
            session.close()

    def list_events(
        self,
        limit: int = 50,
        offset: int = 0,
        group: str | None = None,
        direction: str | None = None,
    ) -> list[dict]:
        """List events, newest first.

        Args:
            limit: Maximum events to return
            offset: Offset for pagination
            group: Filter by group name
            direction: Filter by direction ("out" or "in")

        Returns:
            List of event dictionaries
        """
        session = get_session(self.engine)
        try:
            query = session.query(ScalingEventRecord)
            if group:
                query = query.filter_by(group_name=group)
            if direction:
                query = query.filter_by(direction=direction)

            records = (
                query
                .order_by(desc(ScalingEventRecord.timestamp), desc(ScalingEventRecord.id))
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [r.to_dict() for r in records]
        finally:
            session.close()

    def get_statistics(self, group: str | None = None) -> dict:
        """Aggregate counts over stored events."""
        session = get_session(self.engine)
        try:
            query = session.query(
                ScalingEventRecord.direction,
                func.count(ScalingEventRecord.id),
                func.sum(ScalingEventRecord.magnitude),
            )
            if group:
                query = query.filter(ScalingEventRecord.group_name == group)
            rows = query.group_by(ScalingEventRecord.direction).all()

            by_direction = {d: {"events": n, "instances": int(m or 0)} for d, n, m in rows}
            return {
                "total_events": sum(v["events"] for v in by_direction.values()),
                "scale_out_events": by_direction.get("out", {}).get("events", 0),
                "scale_in_events": by_direction.get("in", {}).get("events", 0),
                "instances_added": by_direction.get("out", {}).get("instances", 0),
                "instances_removed": by_direction.get("in", {}).get("instances", 0),
            }
        finally:
            session.close()


class MemoryAuditSink:
    """Keep scaling events in memory."""

    def __init__(self):
        self._events: list[ScalingEvent] = []
        self._lock = threading.Lock()

    def log(self, event: ScalingEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[ScalingEvent]:
        with self._lock:
            return list(self._events)

    def list_events(self, limit: int = 50, offset: int = 0, **filters) -> list[dict]:
        events = self.events
        if filters.get("group"):
            events = [e for e in events if e.group == filters["group"]]
        if filters.get("direction"):
            events = [e for e in events if e.direction.value == filters["direction"]]
        events.reverse()
        return [e.to_dict() for e in events[offset:offset + limit]]
