"""
Pairing and credential endpoints
"""

from fastapi import APIRouter, Depends
import structlog

from agent_gateway.api.deps import get_registry, get_session_user
from agent_gateway.schemas.pairing import (
    AccessTokenResponse,
    PairingCompleteRequest,
    PairingCompleteResponse,
    PairingStartResponse,
    RefreshRequest,
)
from agent_gateway.services.pairing import DeviceMeta, DeviceRegistry

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/agent")


@router.post("/pairing/start", response_model=PairingStartResponse)
async def start_pairing(
    user_id: str = Depends(get_session_user),
    registry: DeviceRegistry = Depends(get_registry),
):
    """Web: generate a pairing code for the signed-in user"""
    record = registry.begin_pairing(user_id)
    return PairingStartResponse(pairing_code=record.code, expires_at=record.expires_at)


@router.post("/pairing/complete", response_model=PairingCompleteResponse)
async def complete_pairing(
    request: PairingCompleteRequest,
    registry: DeviceRegistry = Depends(get_registry),
):
    """Agent: redeem a pairing code. The device secret is only ever returned here."""
    meta = request.device_meta
    result = registry.complete_pairing(
        request.pairing_code,
        DeviceMeta(name=meta.name, os=meta.os, client_version=meta.client_version),
    )
    return PairingCompleteResponse(
        device_id=result.device.id,
        device_secret=result.device_secret,
        access_token=result.credential.token,
        expires_at=result.credential.expires_at,
    )


@router.post("/auth/refresh", response_model=AccessTokenResponse)
async def refresh_access_token(
    request: RefreshRequest,
    registry: DeviceRegistry = Depends(get_registry),
):
    """Agent: exchange the device secret for a fresh access token"""
    credential = registry.refresh_credential(request.device_id, request.device_secret)
    return AccessTokenResponse(access_token=credential.token, expires_at=credential.expires_at)
