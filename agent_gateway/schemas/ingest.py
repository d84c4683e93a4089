"""
Ingestion Pydantic schemas
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

from agent_gateway.core.config import settings


class HeartbeatRequest(BaseModel):
    device_id: str
    time_entry_id: Optional[str] = None
    timestamp: datetime
    active_app: Optional[str] = None
    active_window: Optional[str] = None
    client_type: str
    client_version: str


class HeartbeatResponse(BaseModel):
    ok: bool = True
    server_time: datetime


class ActivityEventIn(BaseModel):
    """One telemetry sample"""
    type: Literal["input_activity", "active_window", "idle_start", "idle_end"]
    timestamp: datetime
    data: Dict[str, Any] = Field(default_factory=dict)


class EventsBatchRequest(BaseModel):
    device_id: str
    batch_id: str = Field(..., min_length=1, max_length=64, description="Client-generated idempotency key")
    client_type: str
    client_version: str
    events: List[ActivityEventIn] = Field(..., min_length=1, max_length=settings.max_events_per_batch)


class EventsBatchResponse(BaseModel):
    ok: bool = True
    accepted: int
    duplicate: bool = False
