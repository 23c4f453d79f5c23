"""Sync log model"""
from sqlalchemy import Column, Integer, DateTime, Text, Enum
from datetime import datetime
import enum
from app.models.base import Base


class SyncStatus(str, enum.Enum):
    """Sync status enumeration"""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SyncKind(str, enum.Enum):
    """Which path produced the log entry"""
    FULL = "full"
    DELTA = "delta"


class SyncLog(Base):
    """Log of reconciliation runs and applied change notifications"""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)

    kind = Column(Enum(SyncKind), nullable=False)
    status = Column(Enum(SyncStatus), nullable=False)
    message = Column(Text, nullable=True)
    details = Column(Text, nullable=True)  # JSON stats or failure context

    # Timestamp
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<SyncLog(kind={self.kind}, status={self.status})>"
