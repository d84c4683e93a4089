"""
Screenshot capture endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from starlette.concurrency import run_in_threadpool
import structlog

from agent_gateway.api.deps import get_agent_credential, get_screenshots, get_session_user
from agent_gateway.core.config import settings
from agent_gateway.schemas.screenshot import (
    ConfirmRequest,
    OkResponse,
    PresignRequest,
    PresignResponse,
    ScreenshotResponse,
)
from agent_gateway.services.credentials import AccessCredential
from agent_gateway.services.screenshots import ScreenshotService

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/agent/screenshots")


async def read_capped_body(request: Request, limit: int) -> bytes:
    """Read at most ``limit + 1`` bytes so oversize bodies are detectable without buffering them"""
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            break
    return bytes(body[:limit + 1])


@router.post("/presign", response_model=PresignResponse)
async def presign_screenshot(
    request: PresignRequest,
    auth: AccessCredential = Depends(get_agent_credential),
    screenshots: ScreenshotService = Depends(get_screenshots),
):
    """Reserve a screenshot record and return the relay upload target"""
    screenshot = screenshots.presign(
        auth,
        request.device_id,
        request.time_entry_id,
        request.captured_at,
        client_type=request.client_type,
        client_version=request.client_version,
    )
    return PresignResponse(
        screenshot_id=screenshot.id,
        upload_target=f"{settings.api_prefix}/agent/screenshots/{screenshot.id}/upload",
        expires_at=screenshot.upload_expires_at,
    )


@router.put("/{screenshot_id}/upload", response_model=OkResponse)
async def upload_screenshot(
    screenshot_id: str,
    request: Request,
    auth: AccessCredential = Depends(get_agent_credential),
    screenshots: ScreenshotService = Depends(get_screenshots),
):
    """Receive the PNG and relay it to object storage"""
    body = await read_capped_body(request, settings.screenshot_max_bytes)
    await run_in_threadpool(
        screenshots.upload, auth, screenshot_id, body, request.headers.get("content-type")
    )
    return OkResponse()


@router.post("/confirm", response_model=OkResponse)
async def confirm_screenshot(
    request: ConfirmRequest,
    auth: AccessCredential = Depends(get_agent_credential),
    screenshots: ScreenshotService = Depends(get_screenshots),
):
    """409 upload_not_received until the binary is in durable storage"""
    screenshots.confirm(auth, request.screenshot_id, request.device_id)
    return OkResponse()


@router.get("", response_model=List[ScreenshotResponse])
async def list_screenshots(
    time_entry_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_session_user),
    screenshots: ScreenshotService = Depends(get_screenshots),
):
    """Web: confirmed screenshots of the signed-in user"""
    return [
        ScreenshotResponse.model_validate(s)
        for s in screenshots.list_confirmed(user_id, time_entry_id=time_entry_id, limit=limit)
    ]
