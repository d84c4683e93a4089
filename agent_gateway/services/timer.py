"""
Time entry state machine.

Running time accrues from ``last_activity_at``: every transition out of
``running`` (pause, stop, heartbeat) adds ``now - last_activity_at`` to the
duration and moves ``last_activity_at`` forward by exactly the credited amount.
Time spent paused is added to the idle time on resume unless the caller
discards it as a break. Both are kept in milliseconds; the whole-second
``duration`` and ``idle_time`` columns are their floors.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agent_gateway.core.config import settings
from agent_gateway.core.exceptions import (
    ActiveEntryExists,
    InvalidTimerState,
    ProjectNotFound,
    TimeEntryNotFound,
)
from agent_gateway.core.security import utcnow
from agent_gateway.models.project import Project
from agent_gateway.models.time_entry import TimeEntry, TimeEntryStatus

logger = structlog.get_logger(__name__)

POLICY_AUTO_STOP = "auto_stop"
POLICY_REJECT = "reject"
POLICIES = (POLICY_AUTO_STOP, POLICY_REJECT)


def elapsed_ms(since: Optional[datetime], now: datetime) -> int:
    if since is None or now <= since:
        return 0
    return (now - since) // timedelta(milliseconds=1)


class TimerService:
    """Start, pause, resume and stop time entries for one user at a time"""

    def __init__(self, db: Session, policy: Optional[str] = None):
        policy = policy or settings.active_entry_policy
        if policy not in POLICIES:
            raise ValueError(f"Unknown active entry policy: {policy}")
        self.db = db
        self.policy = policy

    # Reads

    def get_active_entry(self, user_id: str) -> Optional[TimeEntry]:
        return (
            self.db.query(TimeEntry)
            .filter(TimeEntry.user_id == user_id, TimeEntry.status.in_(TimeEntryStatus.OPEN))
            .order_by(TimeEntry.start_time.desc())
            .first()
        )

    def get_running_entry(self, user_id: str) -> Optional[TimeEntry]:
        return (
            self.db.query(TimeEntry)
            .filter(TimeEntry.user_id == user_id, TimeEntry.status == TimeEntryStatus.RUNNING)
            .first()
        )

    def get_entry(self, entry_id: str, user_id: str, for_update: bool = False) -> TimeEntry:
        query = self.db.query(TimeEntry).filter(TimeEntry.id == entry_id)
        if for_update:
            query = query.with_for_update()
        entry = query.first()
        # Another user's entry is reported as missing
        if not entry or entry.user_id != user_id:
            raise TimeEntryNotFound()
        return entry

    # Transitions

    def start(
        self,
        user_id: str,
        project_id: str,
        description: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[TimeEntry, Optional[TimeEntry]]:
        """Start a new running entry; returns it with the entry auto-stopped to make room, if any.

        The open-entry read takes a row lock and the partial unique index on
        open entries rejects a concurrent insert that slipped past it.
        """
        now = now or utcnow()
        project = self.db.get(Project, project_id)
        if not project or project.owner_id != user_id:
            raise ProjectNotFound()

        try:
            return self._start(user_id, project, description, now)
        except IntegrityError:
            self.db.rollback()
            if self.policy == POLICY_REJECT:
                raise ActiveEntryExists()
            logger.info("Concurrent start detected, retrying", user_id=user_id)

        try:
            return self._start(user_id, project, description, now)
        except IntegrityError:
            self.db.rollback()
            raise ActiveEntryExists()

    def _start(self, user_id, project, description, now):
        open_entry = (
            self.db.query(TimeEntry)
            .filter(TimeEntry.user_id == user_id, TimeEntry.status.in_(TimeEntryStatus.OPEN))
            .with_for_update()
            .first()
        )
        stopped = None
        if open_entry is not None:
            if self.policy == POLICY_REJECT:
                entry_id = open_entry.id
                self.db.rollback()
                raise ActiveEntryExists(entry_id=entry_id)
            self._finalize(open_entry, now)
            # The stop must hit the index before the new row does
            self.db.flush()
            stopped = open_entry
            logger.info("time_tracking.auto_stop", entry_id=open_entry.id, user_id=user_id,
                        final_duration=open_entry.duration)

        entry = TimeEntry(
            user_id=user_id,
            project_id=project.id,
            description=description,
            status=TimeEntryStatus.RUNNING,
            start_time=now,
            last_activity_at=now,
            duration=0,
            idle_time=0,
            duration_ms=0,
            idle_ms=0,
            total_review_ms=0,
            review_started_at=now if project.review_started_at is not None else None,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        logger.info("time_tracking.start", entry_id=entry.id, user_id=user_id, project_id=project.id)
        return entry, stopped

    def pause(self, entry_id: str, user_id: str, now: Optional[datetime] = None) -> TimeEntry:
        now = now or utcnow()
        entry = self.get_entry(entry_id, user_id, for_update=True)
        self._require(entry, TimeEntryStatus.RUNNING)
        self._accrue(entry, now)
        entry.status = TimeEntryStatus.PAUSED
        self.db.commit()
        logger.info("time_tracking.pause", entry_id=entry.id, user_id=user_id, duration=entry.duration)
        return entry

    def resume(self, entry_id: str, user_id: str, discard_idle: bool = False,
               now: Optional[datetime] = None) -> TimeEntry:
        now = now or utcnow()
        entry = self.get_entry(entry_id, user_id, for_update=True)
        self._require(entry, TimeEntryStatus.PAUSED)
        if not discard_idle:
            entry.idle_ms = (entry.idle_ms or 0) + elapsed_ms(entry.last_activity_at, now)
            entry.idle_time = entry.idle_ms // 1000
        entry.last_activity_at = now
        entry.status = TimeEntryStatus.RUNNING
        self.db.commit()
        logger.info("time_tracking.resume", entry_id=entry.id, user_id=user_id,
                    idle_time=entry.idle_time, discard_idle=discard_idle)
        return entry

    def stop(self, entry_id: str, user_id: str, now: Optional[datetime] = None) -> TimeEntry:
        now = now or utcnow()
        entry = self.get_entry(entry_id, user_id, for_update=True)
        if entry.status == TimeEntryStatus.STOPPED:
            raise InvalidTimerState("Entry is already stopped", entry_id=entry.id,
                                    current_status=entry.status)
        self._finalize(entry, now)
        self.db.commit()
        logger.info("time_tracking.stop", entry_id=entry.id, user_id=user_id, final_duration=entry.duration)
        return entry

    def touch(self, entry: TimeEntry, now: datetime) -> bool:
        """Heartbeat/activity transition; does not commit"""
        if entry.status != TimeEntryStatus.RUNNING:
            return False
        self._accrue(entry, now)
        return True

    def _require(self, entry: TimeEntry, status: str) -> None:
        if entry.status != status:
            raise InvalidTimerState(f"Entry is not {status}", entry_id=entry.id,
                                    current_status=entry.status)

    def _accrue(self, entry: TimeEntry, now: datetime) -> None:
        anchor = entry.last_activity_at or entry.start_time
        credited = elapsed_ms(anchor, now)
        entry.duration_ms = (entry.duration_ms or 0) + credited
        entry.duration = entry.duration_ms // 1000
        entry.last_activity_at = anchor + timedelta(milliseconds=credited)

    def _finalize(self, entry: TimeEntry, now: datetime) -> None:
        if entry.status == TimeEntryStatus.RUNNING:
            self._accrue(entry, now)
        if entry.review_started_at is not None:
            entry.total_review_ms = (entry.total_review_ms or 0) + elapsed_ms(entry.review_started_at, now)
            entry.review_started_at = None
        entry.end_time = now
        entry.status = TimeEntryStatus.STOPPED

    # Review

    def enter_review(self, project: Project, now: datetime) -> None:
        if project.review_started_at is not None:
            return
        project.review_started_at = now
        for entry in self._open_entries(project.id):
            if entry.review_started_at is None:
                entry.review_started_at = now
        logger.info("Project entered review", project_id=project.id)

    def exit_review(self, project: Project, now: datetime) -> int:
        """Close the review window; returns the elapsed review time in ms"""
        if project.review_started_at is None:
            return 0
        elapsed = elapsed_ms(project.review_started_at, now)
        project.total_review_ms = (project.total_review_ms or 0) + elapsed
        if project.due_date is not None:
            project.due_date = project.due_date + timedelta(milliseconds=elapsed)
        project.review_started_at = None
        for entry in self._open_entries(project.id):
            if entry.review_started_at is not None:
                entry.total_review_ms = (entry.total_review_ms or 0) + elapsed_ms(entry.review_started_at, now)
                entry.review_started_at = None
        logger.info("Project left review", project_id=project.id, review_ms=elapsed,
                    due_date=project.due_date.isoformat() if project.due_date else None)
        return elapsed

    def _open_entries(self, project_id: str) -> List[TimeEntry]:
        return (
            self.db.query(TimeEntry)
            .filter(TimeEntry.project_id == project_id, TimeEntry.status.in_(TimeEntryStatus.OPEN))
            .all()
        )

    # Maintenance and reporting

    def sweep_stale(self, threshold_seconds: int, now: Optional[datetime] = None) -> List[TimeEntry]:
        """Pause running entries with no activity for ``threshold_seconds``.

        The entry is paused as of its last activity, so the silent gap is not
        billed; a later resume books it as idle time.
        """
        now = now or utcnow()
        cutoff = now - timedelta(seconds=threshold_seconds)
        stale = (
            self.db.query(TimeEntry)
            .filter(TimeEntry.status == TimeEntryStatus.RUNNING, TimeEntry.last_activity_at < cutoff)
            .with_for_update()
            .all()
        )
        for entry in stale:
            entry.status = TimeEntryStatus.PAUSED
            logger.warning("time_tracking.stale_session", entry_id=entry.id, user_id=entry.user_id,
                           last_activity=entry.last_activity_at.isoformat())
        self.db.commit()
        return stale

    def time_stats(self, user_id: str, start: Optional[datetime] = None,
                   end: Optional[datetime] = None) -> Dict:
        query = self.db.query(TimeEntry).filter(
            TimeEntry.user_id == user_id, TimeEntry.status == TimeEntryStatus.STOPPED
        )
        if start:
            query = query.filter(TimeEntry.start_time >= start)
        if end:
            query = query.filter(TimeEntry.start_time <= end)
        entries = query.all()

        by_project: Dict[str, int] = {}
        for entry in entries:
            by_project[entry.project_id] = by_project.get(entry.project_id, 0) + (entry.duration or 0)

        return {
            "total_duration": sum(e.duration or 0 for e in entries),
            "total_idle_time": sum(e.idle_time or 0 for e in entries),
            "entries_count": len(entries),
            "by_project": [
                {"project_id": project_id, "total_duration": total}
                for project_id, total in sorted(by_project.items())
            ],
        }
