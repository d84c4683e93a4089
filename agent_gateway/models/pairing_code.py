"""
Pairing code model: one-time secret that bootstraps a device
"""

from sqlalchemy import Column, String, DateTime
from agent_gateway.database.connection import Base
from agent_gateway.core.security import utcnow
import uuid


class PairingCode(Base):
    """Short-lived code shown in the web app and typed into the agent"""

    __tablename__ = "agent_pairing_codes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(String(16), unique=True, nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime)
    # Audit trail: the device the code was redeemed for
    device_id = Column(String(36))
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def is_expired(self, now) -> bool:
        return now > self.expires_at

    def __repr__(self):
        return f"<PairingCode(user_id={self.user_id}, expires_at={self.expires_at}, used_at={self.used_at})>"
