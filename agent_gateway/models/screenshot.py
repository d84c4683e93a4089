"""
Screenshot model
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from agent_gateway.database.connection import Base
from agent_gateway.core.security import utcnow
import uuid

PLACEHOLDER_KEY_PREFIX = "pending-"


class ScreenshotStatus:
    PRESIGNED = "presigned"
    UPLOADING = "uploading"
    CONFIRMED = "confirmed"


class Screenshot(Base):
    """A periodic capture attached to a time entry.

    ``storage_key`` holds a ``pending-`` placeholder until the binary has been
    written to durable storage.
    """

    __tablename__ = "time_entry_screenshots"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    time_entry_id = Column(String(36), ForeignKey("time_entries.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    project_id = Column(String(36), nullable=False, index=True)
    device_id = Column(String(36))
    storage_key = Column(String(512), nullable=False)
    status = Column(String(20), nullable=False, default=ScreenshotStatus.PRESIGNED)
    size_bytes = Column(Integer)
    captured_at = Column(DateTime, nullable=False, index=True)
    upload_expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def has_placeholder_key(self) -> bool:
        return self.storage_key.startswith(PLACEHOLDER_KEY_PREFIX)

    def __repr__(self):
        return f"<Screenshot(id={self.id}, time_entry_id={self.time_entry_id}, status={self.status})>"
