"""
Heartbeat and activity batch ingestion.

Agents deliver at least once, so every call here is safe to retry. Batches are
deduplicated by their client-generated id and applied all-or-nothing.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agent_gateway.core.config import settings
from agent_gateway.core.exceptions import DeviceMismatch, InvalidRequest
from agent_gateway.core.security import as_naive_utc, utcnow
from agent_gateway.models.activity import ActivityBatch, ActivityEvent, ActivityEventType
from agent_gateway.models.time_entry import TimeEntry
from agent_gateway.services.credentials import AccessCredential
from agent_gateway.services.pairing import DeviceRegistry
from agent_gateway.services.timer import TimerService

logger = structlog.get_logger(__name__)


@dataclass
class BatchResult:
    accepted: int
    duplicate: bool = False
    time_entry_id: Optional[str] = None


def require_same_device(auth: AccessCredential, device_id: str) -> None:
    if auth.device_id != device_id:
        raise DeviceMismatch()


class IngestionService:
    def __init__(self, db: Session, registry: DeviceRegistry, timer: Optional[TimerService] = None):
        self.db = db
        self.registry = registry
        self.timer = timer or TimerService(db)

    def heartbeat(
        self,
        auth: AccessCredential,
        device_id: str,
        time_entry_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        client_type: Optional[str] = None,
        client_version: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> datetime:
        """Record liveness; returns server time.

        An unknown, foreign or non-running time entry is ignored, never an error.
        """
        require_same_device(auth, device_id)
        now = now or utcnow()
        self.registry.touch(device_id, now)

        advanced = False
        if time_entry_id:
            entry = self.db.get(TimeEntry, time_entry_id)
            if entry is not None and entry.user_id == auth.user_id:
                advanced = self.timer.touch(entry, now)
            if not advanced:
                logger.debug("Heartbeat time entry ignored", device_id=device_id, time_entry_id=time_entry_id)
        self.db.commit()

        logger.info(
            "agent.heartbeat",
            device_id=device_id,
            time_entry_id=time_entry_id,
            advanced=advanced,
            client_type=client_type,
            client_version=client_version,
            client_timestamp=timestamp.isoformat() if timestamp else None,
        )
        return now

    def submit_event_batch(
        self,
        auth: AccessCredential,
        device_id: str,
        batch_id: str,
        events: Sequence[Any],
        client_type: Optional[str] = None,
        client_version: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BatchResult:
        """Persist one batch exactly once.

        ``events`` items expose ``type``, ``timestamp`` and ``data``.
        """
        require_same_device(auth, device_id)
        if not 1 <= len(events) <= settings.max_events_per_batch:
            raise InvalidRequest(f"A batch holds between 1 and {settings.max_events_per_batch} events")
        for event in events:
            if event.type not in ActivityEventType.ALL:
                raise InvalidRequest(f"Unknown event type: {event.type}")

        if self.db.get(ActivityBatch, batch_id) is not None:
            logger.info("agent.events.duplicate", device_id=device_id, batch_id=batch_id)
            return BatchResult(accepted=0, duplicate=True)

        now = now or utcnow()
        running = self.timer.get_running_entry(auth.user_id)
        time_entry_id = running.id if running else None

        self.db.add_all([
            ActivityEvent(
                event_type=event.type,
                device_id=device_id,
                user_id=auth.user_id,
                time_entry_id=time_entry_id,
                batch_id=batch_id,
                timestamp=as_naive_utc(event.timestamp),
                payload=event.data or {},
                received_at=now,
            )
            for event in events
        ])
        self.db.add(ActivityBatch(batch_id=batch_id, device_id=device_id,
                                  event_count=len(events), received_at=now))
        self.registry.touch(device_id, now)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost the race against a concurrent delivery of the same batch
            self.db.rollback()
            logger.info("agent.events.duplicate", device_id=device_id, batch_id=batch_id, raced=True)
            return BatchResult(accepted=0, duplicate=True)

        logger.info(
            "agent.events.batch",
            device_id=device_id,
            batch_id=batch_id,
            event_count=len(events),
            time_entry_id=time_entry_id,
            client_type=client_type,
            client_version=client_version,
        )
        return BatchResult(accepted=len(events), time_entry_id=time_entry_id)
