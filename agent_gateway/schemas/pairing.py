"""
Pairing and credential Pydantic schemas
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class PairingStartResponse(BaseModel):
    """One-time code to type into the agent"""
    pairing_code: str
    expires_at: datetime


class DeviceMeta(BaseModel):
    """Self-description sent by the agent when pairing"""
    name: str = Field(..., min_length=1, max_length=255, description="Display name of the device")
    os: Optional[str] = Field(None, max_length=100, description="Operating system")
    client_version: Optional[str] = Field(None, max_length=50, description="Agent version")


class PairingCompleteRequest(BaseModel):
    pairing_code: str = Field(..., min_length=4, max_length=16)
    device_meta: DeviceMeta


class PairingCompleteResponse(BaseModel):
    """Returned exactly once; the device secret is not retrievable afterwards"""
    device_id: str
    device_secret: str
    access_token: str
    expires_at: datetime


class RefreshRequest(BaseModel):
    device_id: str = Field(..., min_length=1)
    device_secret: str = Field(..., min_length=1)


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
