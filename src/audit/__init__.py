"""Scaling event audit trail."""

from src.audit.models import ScalingEventRecord, create_db_engine, get_session
from src.audit.service import MemoryAuditSink, SqlAuditSink

__all__ = [
    "ScalingEventRecord",
    "create_db_engine",
    "get_session",
    "MemoryAuditSink",
    "SqlAuditSink",
]
