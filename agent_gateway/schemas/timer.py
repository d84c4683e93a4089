"""
Time entry Pydantic schemas
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class TimerStartRequest(BaseModel):
    project_id: str
    description: Optional[str] = Field(None, max_length=2000)
    device_id: Optional[str] = None


class TimerResumeRequest(BaseModel):
    discard_idle: bool = Field(False, description="Treat the paused span as a break instead of idle time")


class TimeEntryResponse(BaseModel):
    """Schema for time entry response"""
    id: str
    user_id: str
    project_id: str
    description: Optional[str] = None
    status: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: int
    idle_time: int
    duration_ms: int = 0
    idle_ms: int = 0
    last_activity_at: Optional[datetime] = None
    review_started_at: Optional[datetime] = None
    total_review_ms: int

    class Config:
        from_attributes = True


class TimerStartResponse(TimeEntryResponse):
    auto_stopped_entry_id: Optional[str] = None


class ProjectTotal(BaseModel):
    project_id: str
    total_duration: int


class TimeStatsResponse(BaseModel):
    total_duration: int
    total_idle_time: int
    entries_count: int
    by_project: List[ProjectTotal]
