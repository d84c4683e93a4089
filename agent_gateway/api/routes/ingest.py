"""
Agent telemetry ingestion endpoints
"""

from fastapi import APIRouter, Depends
import structlog

from agent_gateway.api.deps import get_agent_credential, get_ingestion
from agent_gateway.schemas.ingest import (
    EventsBatchRequest,
    EventsBatchResponse,
    HeartbeatRequest,
    HeartbeatResponse,
)
from agent_gateway.services.credentials import AccessCredential
from agent_gateway.services.ingestion import IngestionService

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/agent")


@router.post("/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(
    request: HeartbeatRequest,
    auth: AccessCredential = Depends(get_agent_credential),
    ingestion: IngestionService = Depends(get_ingestion),
):
    """Liveness signal; advances the running time entry if one is named"""
    server_time = ingestion.heartbeat(
        auth,
        request.device_id,
        time_entry_id=request.time_entry_id,
        timestamp=request.timestamp,
        client_type=request.client_type,
        client_version=request.client_version,
    )
    return HeartbeatResponse(server_time=server_time)


@router.post("/events/batch", response_model=EventsBatchResponse)
async def submit_events_batch(
    request: EventsBatchRequest,
    auth: AccessCredential = Depends(get_agent_credential),
    ingestion: IngestionService = Depends(get_ingestion),
):
    """Idempotent batch submission; a replayed batch id reports duplicate"""
    result = ingestion.submit_event_batch(
        auth,
        request.device_id,
        request.batch_id,
        request.events,
        client_type=request.client_type,
        client_version=request.client_version,
    )
    return EventsBatchResponse(accepted=result.accepted, duplicate=result.duplicate)
