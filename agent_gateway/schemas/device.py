"""
Device Pydantic schemas
"""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class DeviceResponse(BaseModel):
    """Schema for device response"""
    id: str
    name: str
    os: Optional[str] = None
    client_version: Optional[str] = None
    last_seen_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class DeviceListResponse(BaseModel):
    """Schema for device list response"""
    devices: list[DeviceResponse]
    total: int


class RevokeResponse(BaseModel):
    ok: bool = True
    device_id: str
    revoked_at: datetime
