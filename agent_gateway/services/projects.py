"""
Project lookups and status changes
"""

from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from agent_gateway.core.config import settings
from agent_gateway.core.exceptions import ProjectNotFound
from agent_gateway.core.security import utcnow
from agent_gateway.models.project import Project
from agent_gateway.services.timer import TimerService

logger = structlog.get_logger(__name__)


class ProjectService:
    def __init__(self, db: Session, timer: Optional[TimerService] = None):
        self.db = db
        self.timer = timer or TimerService(db)

    def create(self, owner_id: str, name: str, status: str = "active",
               due_date: Optional[datetime] = None, now: Optional[datetime] = None) -> Project:
        now = now or utcnow()
        project = Project(owner_id=owner_id, name=name, status=status, due_date=due_date,
                          total_review_ms=0, created_at=now)
        if status == settings.review_status:
            project.review_started_at = now
        self.db.add(project)
        self.db.commit()
        self.db.refresh(project)
        logger.info("Project created", project_id=project.id, owner_id=owner_id)
        return project

    def get(self, project_id: str, user_id: str) -> Project:
        project = self.db.get(Project, project_id)
        if not project or project.owner_id != user_id:
            raise ProjectNotFound()
        return project

    def list_for_user(self, user_id: str) -> List[Project]:
        return (
            self.db.query(Project)
            .filter(Project.owner_id == user_id)
            .order_by(Project.name)
            .all()
        )

    def set_status(self, project_id: str, user_id: str, status: str,
                   now: Optional[datetime] = None) -> Project:
        """Change the project status, opening or closing its review window"""
        now = now or utcnow()
        project = self.get(project_id, user_id)
        previous = project.status
        if previous == status:
            return project

        review = settings.review_status
        if status == review:
            self.timer.enter_review(project, now)
        elif previous == review:
            self.timer.exit_review(project, now)
        project.status = status
        self.db.commit()
        self.db.refresh(project)
        logger.info("Project status changed", project_id=project.id, from_status=previous, to_status=status)
        return project
