"""
Screenshot Pydantic schemas
"""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class PresignRequest(BaseModel):
    device_id: str
    time_entry_id: str
    captured_at: datetime
    client_type: str
    client_version: str


class PresignResponse(BaseModel):
    screenshot_id: str
    upload_target: str
    expires_at: datetime


class ConfirmRequest(BaseModel):
    screenshot_id: str
    device_id: str


class OkResponse(BaseModel):
    ok: bool = True


class ScreenshotResponse(BaseModel):
    """Confirmed screenshot metadata"""
    id: str
    time_entry_id: str
    project_id: str
    storage_key: str
    size_bytes: Optional[int] = None
    captured_at: datetime

    class Config:
        from_attributes = True
