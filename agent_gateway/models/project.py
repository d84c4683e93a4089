"""
Project model: the minimal slice of the project data this service needs
"""

from sqlalchemy import Column, BigInteger, String, DateTime
from agent_gateway.database.connection import Base
from agent_gateway.core.security import utcnow
import uuid


class Project(Base):
    """A project time is tracked against"""

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False, default="active")
    due_date = Column(DateTime)
    review_started_at = Column(DateTime)
    total_review_ms = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Project(id={self.id}, name={self.name}, status={self.status})>"
