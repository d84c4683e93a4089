"""
Request dependencies: caller identity and service wiring
"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from agent_gateway.core.exceptions import InvalidAccessToken, NotAuthenticated
from agent_gateway.database.connection import get_database
from agent_gateway.services.blob_store import BlobStore, get_blob_store
from agent_gateway.services.credentials import AccessCredential, CredentialIssuer, get_credential_issuer
from agent_gateway.services.ingestion import IngestionService
from agent_gateway.services.pairing import DeviceRegistry
from agent_gateway.services.projects import ProjectService
from agent_gateway.services.screenshots import ScreenshotService
from agent_gateway.services.timer import TimerService


def get_session_user(request: Request) -> str:
    """User id of the web session; the login flow itself lives in the web app"""
    user_id = request.session.get("user_id")
    if not user_id:
        raise NotAuthenticated()
    return str(user_id)


def get_agent_credential(
    authorization: Optional[str] = Header(None),
    issuer: CredentialIssuer = Depends(get_credential_issuer),
) -> AccessCredential:
    """Verified bearer credential of a paired agent"""
    if not authorization or not authorization.startswith("Bearer "):
        raise InvalidAccessToken("Missing or invalid Authorization header")
    return issuer.verify(authorization[len("Bearer "):].strip())


def get_registry(
    db: Session = Depends(get_database),
    issuer: CredentialIssuer = Depends(get_credential_issuer),
) -> DeviceRegistry:
    return DeviceRegistry(db, issuer)


def get_timer(db: Session = Depends(get_database)) -> TimerService:
    return TimerService(db)


def get_projects(timer: TimerService = Depends(get_timer)) -> ProjectService:
    return ProjectService(timer.db, timer)


def get_ingestion(
    registry: DeviceRegistry = Depends(get_registry),
    timer: TimerService = Depends(get_timer),
) -> IngestionService:
    return IngestionService(registry.db, registry, timer)


def get_screenshots(
    db: Session = Depends(get_database),
    blob_store: Optional[BlobStore] = Depends(get_blob_store),
) -> ScreenshotService:
    return ScreenshotService(db, blob_store)
