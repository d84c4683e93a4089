"""
Activity ingestion models: replay guard and raw telemetry events
"""

from sqlalchemy import Column, BigInteger, Integer, String, DateTime, JSON
from agent_gateway.database.connection import Base
from agent_gateway.core.security import utcnow


class ActivityEventType:
    INPUT_ACTIVITY = "input_activity"
    ACTIVE_WINDOW = "active_window"
    IDLE_START = "idle_start"
    IDLE_END = "idle_end"

    ALL = (INPUT_ACTIVITY, ACTIVE_WINDOW, IDLE_START, IDLE_END)


class ActivityBatch(Base):
    """Processed batch ids; the primary key is the idempotency guarantee"""

    __tablename__ = "agent_processed_batches"

    batch_id = Column(String(64), primary_key=True)
    device_id = Column(String(36), nullable=False, index=True)
    event_count = Column(Integer, nullable=False)
    received_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<ActivityBatch(batch_id={self.batch_id}, events={self.event_count})>"


class ActivityEvent(Base):
    """One telemetry sample. Append-only."""

    __tablename__ = "agent_activity_events"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    event_type = Column(String(32), nullable=False)
    device_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    time_entry_id = Column(String(36), index=True)
    batch_id = Column(String(64), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    payload = Column(JSON)
    received_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<ActivityEvent(type={self.event_type}, device_id={self.device_id}, timestamp={self.timestamp})>"
