"""
Time entry model
"""

from sqlalchemy import Column, BigInteger, Integer, String, Text, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from agent_gateway.database.connection import Base
from agent_gateway.core.security import utcnow
import uuid


class TimeEntryStatus:
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"

    OPEN = (RUNNING, PAUSED)


class TimeEntry(Base):
    """One work session. Stopped entries are immutable."""

    __tablename__ = "time_entries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(Text)
    status = Column(String(20), nullable=False, default=TimeEntryStatus.RUNNING, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime)
    duration = Column(Integer, nullable=False, default=0)  # seconds, floor of duration_ms
    idle_time = Column(Integer, nullable=False, default=0)  # seconds, floor of idle_ms
    duration_ms = Column(BigInteger, nullable=False, default=0)
    idle_ms = Column(BigInteger, nullable=False, default=0)
    last_activity_at = Column(DateTime)
    review_started_at = Column(DateTime)
    total_review_ms = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    project = relationship("Project")

    __table_args__ = (
        # At most one running or paused entry per user
        Index(
            "uq_time_entries_open_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("status != 'stopped'"),
            sqlite_where=text("status != 'stopped'"),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.status in TimeEntryStatus.OPEN

    def __repr__(self):
        return f"<TimeEntry(id={self.id}, user_id={self.user_id}, status={self.status}, duration={self.duration})>"
