"""Database models for scaling event persistence.

Supports SQLite (default) and PostgreSQL (production).
"""

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    String,
    create_engine,
)
from sqlalchemy.orm import DeclarativeBase, sessionmaker

DATA_DIR = Path(__file__).parent.parent.parent / "DATA"

DEFAULT_DB_URL = f"sqlite:///{DATA_DIR}/scaling_events.db"


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScalingEventRecord(Base):
    """Persisted scaling event."""

    __tablename__ = "scaling_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_name = Column(String(255), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    recorded_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    direction = Column(String(8), nullable=False, index=True)  # out, in
    magnitude = Column(Integer, nullable=False)
    trigger = Column(String(255), nullable=False)
    old_capacity = Column(Integer, nullable=False)
    new_capacity = Column(Integer, nullable=False)

    def to_dict(self) -> dict:
        """Convert to dictionary for API/display.

        Returns:
            Dictionary representation of the record
        """
        return {
            "id": self.id,
            "group": self.group_name,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "direction": self.direction,
            "magnitude": self.magnitude,
            "trigger": self.trigger,
            "old_capacity": self.old_capacity,
            "new_capacity": self.new_capacity,
        }


def create_db_engine(db_url: str = DEFAULT_DB_URL):
    """Create database engine and tables.

    Args:
        db_url: Database connection URL (SQLite or PostgreSQL)

    Returns:
        SQLAlchemy engine
    """
    connect_args = {}
    if db_url.startswith("sqlite"):
        # Events are written from worker threads
        connect_args["check_same_thread"] = False
        if db_url == DEFAULT_DB_URL:
            DATA_DIR.mkdir(parents=True, exist_ok=True)

    engine = create_engine(db_url, echo=False, connect_args=connect_args)
    Base.metadata.create_all(engine)
    return engine


def get_session(engine):
    """Get database session.

    Args:
        engine: SQLAlchemy engine

    Returns:
        New session instance
    """
    Session = sessionmaker(bind=engine)
    return Session()
