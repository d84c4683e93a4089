"""
Timer control endpoints for the agent and the web app.

Both paths share one TimerService, so the active-entry policy is the same
whichever client starts a timer.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
import structlog

from agent_gateway.api.deps import get_agent_credential, get_registry, get_session_user, get_timer
from agent_gateway.core.security import as_naive_utc
from agent_gateway.schemas.timer import (
    TimeEntryResponse,
    TimerResumeRequest,
    TimerStartRequest,
    TimerStartResponse,
    TimeStatsResponse,
)
from agent_gateway.services.credentials import AccessCredential
from agent_gateway.services.pairing import DeviceRegistry
from agent_gateway.services.timer import TimerService

logger = structlog.get_logger(__name__)
agent_router = APIRouter(prefix="/agent/timer")
web_router = APIRouter(prefix="/time-entries")


def agent_user(
    auth: AccessCredential = Depends(get_agent_credential),
    registry: DeviceRegistry = Depends(get_registry),
) -> str:
    """Timer control additionally refuses revoked devices"""
    registry.require_active_device(auth.device_id, auth.user_id)
    return auth.user_id


def _start_response(timer: TimerService, user_id: str, request: TimerStartRequest) -> TimerStartResponse:
    entry, stopped = timer.start(user_id, request.project_id, request.description)
    response = TimerStartResponse.model_validate(entry)
    response.auto_stopped_entry_id = stopped.id if stopped else None
    return response


# Agent path

@agent_router.get("/active", response_model=Optional[TimeEntryResponse])
async def agent_active_entry(
    auth: AccessCredential = Depends(get_agent_credential),
    timer: TimerService = Depends(get_timer),
):
    entry = timer.get_active_entry(auth.user_id)
    return TimeEntryResponse.model_validate(entry) if entry else None


@agent_router.post("/start", response_model=TimerStartResponse)
async def agent_start(
    request: TimerStartRequest,
    user_id: str = Depends(agent_user),
    timer: TimerService = Depends(get_timer),
):
    return _start_response(timer, user_id, request)


@agent_router.post("/{entry_id}/pause", response_model=TimeEntryResponse)
async def agent_pause(
    entry_id: str,
    user_id: str = Depends(agent_user),
    timer: TimerService = Depends(get_timer),
):
    return TimeEntryResponse.model_validate(timer.pause(entry_id, user_id))


@agent_router.post("/{entry_id}/resume", response_model=TimeEntryResponse)
async def agent_resume(
    entry_id: str,
    request: Optional[TimerResumeRequest] = None,
    user_id: str = Depends(agent_user),
    timer: TimerService = Depends(get_timer),
):
    discard_idle = request.discard_idle if request else False
    return TimeEntryResponse.model_validate(timer.resume(entry_id, user_id, discard_idle=discard_idle))


@agent_router.post("/{entry_id}/stop", response_model=TimeEntryResponse)
async def agent_stop(
    entry_id: str,
    user_id: str = Depends(agent_user),
    timer: TimerService = Depends(get_timer),
):
    return TimeEntryResponse.model_validate(timer.stop(entry_id, user_id))


# Web path

@web_router.get("/active", response_model=Optional[TimeEntryResponse])
async def web_active_entry(
    user_id: str = Depends(get_session_user),
    timer: TimerService = Depends(get_timer),
):
    entry = timer.get_active_entry(user_id)
    return TimeEntryResponse.model_validate(entry) if entry else None


@web_router.get("/stats", response_model=TimeStatsResponse)
async def web_time_stats(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    user_id: str = Depends(get_session_user),
    timer: TimerService = Depends(get_timer),
):
    """Totals over stopped entries"""
    stats = timer.time_stats(
        user_id,
        start=as_naive_utc(start) if start else None,
        end=as_naive_utc(end) if end else None,
    )
    return TimeStatsResponse(**stats)


@web_router.post("/start", response_model=TimerStartResponse)
async def web_start(
    request: TimerStartRequest,
    user_id: str = Depends(get_session_user),
    timer: TimerService = Depends(get_timer),
):
    return _start_response(timer, user_id, request)


@web_router.post("/{entry_id}/pause", response_model=TimeEntryResponse)
async def web_pause(
    entry_id: str,
    user_id: str = Depends(get_session_user),
    timer: TimerService = Depends(get_timer),
):
    return TimeEntryResponse.model_validate(timer.pause(entry_id, user_id))


@web_router.post("/{entry_id}/resume", response_model=TimeEntryResponse)
async def web_resume(
    entry_id: str,
    request: Optional[TimerResumeRequest] = None,
    user_id: str = Depends(get_session_user),
    timer: TimerService = Depends(get_timer),
):
    discard_idle = request.discard_idle if request else False
    return TimeEntryResponse.model_validate(timer.resume(entry_id, user_id, discard_idle=discard_idle))


@web_router.post("/{entry_id}/stop", response_model=TimeEntryResponse)
async def web_stop(
    entry_id: str,
    user_id: str = Depends(get_session_user),
    timer: TimerService = Depends(get_timer),
):
    return TimeEntryResponse.model_validate(timer.stop(entry_id, user_id))
