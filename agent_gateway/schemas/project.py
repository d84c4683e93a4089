"""
Project Pydantic schemas
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    status: str = Field("active", max_length=50)
    due_date: Optional[datetime] = None


class ProjectStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1, max_length=50)


class ProjectResponse(BaseModel):
    id: str
    name: str
    status: str
    due_date: Optional[datetime] = None
    review_started_at: Optional[datetime] = None
    total_review_ms: int

    class Config:
        from_attributes = True


class ProjectSummary(BaseModel):
    """Simplified project for the agent's picker"""
    id: str
    name: str
    status: str

    class Config:
        from_attributes = True
