"""
Device model for paired desktop agents
"""

from sqlalchemy import Column, String, DateTime
from agent_gateway.database.connection import Base
from agent_gateway.core.security import utcnow
import uuid


class Device(Base):
    """A registered agent installation.

    Only the SHA-256 hash of the device secret is stored. Devices are never
    deleted; revocation sets ``revoked_at``.
    """

    __tablename__ = "devices"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    os = Column(String(100))
    client_version = Column(String(50))
    secret_hash = Column(String(64), nullable=False)
    last_seen_at = Column(DateTime, index=True)
    revoked_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def __repr__(self):
        return f"<Device(id={self.id}, name={self.name}, revoked_at={self.revoked_at})>"
