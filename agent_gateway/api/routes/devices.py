"""
Device management endpoints
"""

from fastapi import APIRouter, Depends
import structlog

from agent_gateway.api.deps import get_registry, get_session_user
from agent_gateway.schemas.device import DeviceListResponse, DeviceResponse, RevokeResponse
from agent_gateway.services.pairing import DeviceRegistry

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/agent")


@router.get("/devices", response_model=DeviceListResponse)
async def list_devices(
    user_id: str = Depends(get_session_user),
    registry: DeviceRegistry = Depends(get_registry),
):
    """Get the signed-in user's devices, newest first"""
    devices = registry.list_devices(user_id)
    return DeviceListResponse(
        devices=[DeviceResponse.model_validate(device) for device in devices],
        total=len(devices),
    )


@router.post("/devices/{device_id}/revoke", response_model=RevokeResponse)
async def revoke_device(
    device_id: str,
    user_id: str = Depends(get_session_user),
    registry: DeviceRegistry = Depends(get_registry),
):
    """Revoke a device. Its current access token keeps working until it expires."""
    device = registry.revoke_device(device_id, user_id)
    return RevokeResponse(device_id=device.id, revoked_at=device.revoked_at)
