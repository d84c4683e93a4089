"""
Screenshot capture pipeline: presign, relay upload, confirm
"""

import uuid
from datetime import datetime, timedelta
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from agent_gateway.core.config import settings
from agent_gateway.core.exceptions import (
    EmptyPayload,
    Forbidden,
    InvalidImageFormat,
    PayloadTooLarge,
    ScreenshotNotFound,
    StorageNotConfigured,
    TimeEntryNotFound,
    UnsupportedMediaType,
    UploadNotReceived,
    UploadWindowExpired,
)
from agent_gateway.core.security import as_naive_utc, utcnow
from agent_gateway.models.screenshot import PLACEHOLDER_KEY_PREFIX, Screenshot, ScreenshotStatus
from agent_gateway.models.time_entry import TimeEntry
from agent_gateway.services.blob_store import BlobStore
from agent_gateway.services.credentials import AccessCredential
from agent_gateway.services.ingestion import require_same_device

logger = structlog.get_logger(__name__)

PNG_SIGNATURE = b"\x89PNG"
STORED_CONTENT_TYPE = "image/png"


def media_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";")[0].strip().lower()


class ScreenshotService:
    def __init__(self, db: Session, blob_store: Optional[BlobStore] = None):
        self.db = db
        self.blob_store = blob_store

    def presign(
        self,
        auth: AccessCredential,
        device_id: str,
        time_entry_id: str,
        captured_at: datetime,
        client_type: Optional[str] = None,
        client_version: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Screenshot:
        require_same_device(auth, device_id)
        now = now or utcnow()
        entry = self.db.get(TimeEntry, time_entry_id)
        if not entry or entry.user_id != auth.user_id:
            raise TimeEntryNotFound()

        screenshot = Screenshot(
            time_entry_id=entry.id,
            user_id=auth.user_id,
            project_id=entry.project_id,
            device_id=device_id,
            storage_key=f"{PLACEHOLDER_KEY_PREFIX}{uuid.uuid4()}",
            status=ScreenshotStatus.PRESIGNED,
            captured_at=as_naive_utc(captured_at),
            upload_expires_at=now + timedelta(seconds=settings.screenshot_upload_ttl_seconds),
            created_at=now,
        )
        self.db.add(screenshot)
        self.db.commit()
        self.db.refresh(screenshot)
        logger.info(
            "agent.screenshots.presign",
            screenshot_id=screenshot.id,
            time_entry_id=entry.id,
            device_id=device_id,
            client_type=client_type,
            client_version=client_version,
        )
        return screenshot

    def upload(
        self,
        auth: AccessCredential,
        screenshot_id: str,
        body: bytes,
        content_type: Optional[str],
        now: Optional[datetime] = None,
    ) -> Screenshot:
        """Validate the binary and relay it to durable storage.

        Never trust the declared type: the body must start with the PNG
        signature. If the relay fails the record goes back to ``presigned``
        with its placeholder key, so confirm keeps answering "not received".
        """
        if not media_type(content_type).startswith("image/"):
            raise UnsupportedMediaType()
        if not body:
            raise EmptyPayload()
        if len(body) > settings.screenshot_max_bytes:
            raise PayloadTooLarge(
                f"Screenshot exceeds {settings.screenshot_max_bytes // (1024 * 1024)} MB limit "
                f"({len(body) / 1024 / 1024:.1f} MB)",
                max_bytes=settings.screenshot_max_bytes,
            )
        if body[:4] != PNG_SIGNATURE:
            raise InvalidImageFormat()

        screenshot = self._get_owned(screenshot_id, auth.user_id)
        if screenshot.status == ScreenshotStatus.CONFIRMED:
            return screenshot
        now = now or utcnow()
        if now > screenshot.upload_expires_at:
            raise UploadWindowExpired()
        if self.blob_store is None:
            raise StorageNotConfigured()

        screenshot.status = ScreenshotStatus.UPLOADING
        self.db.commit()

        key = self.blob_store.key_for("agent-screenshots", f"{screenshot.id}.png")
        try:
            self.blob_store.put(key, body, STORED_CONTENT_TYPE)
        except Exception:
            screenshot.status = ScreenshotStatus.PRESIGNED
            self.db.commit()
            logger.error("screenshot.upload_failed", screenshot_id=screenshot.id, user_id=auth.user_id)
            raise

        screenshot.storage_key = key
        screenshot.size_bytes = len(body)
        self.db.commit()
        logger.info("agent.screenshots.upload", screenshot_id=screenshot.id,
                    size_bytes=len(body), user_id=auth.user_id)
        return screenshot

    def confirm(self, auth: AccessCredential, screenshot_id: str, device_id: str) -> Screenshot:
        require_same_device(auth, device_id)
        screenshot = self._get_owned(screenshot_id, auth.user_id)
        if screenshot.has_placeholder_key:
            raise UploadNotReceived()
        if screenshot.status != ScreenshotStatus.CONFIRMED:
            screenshot.status = ScreenshotStatus.CONFIRMED
            self.db.commit()
        logger.info("agent.screenshots.confirm", screenshot_id=screenshot.id,
                    device_id=device_id, user_id=auth.user_id)
        return screenshot

    def list_confirmed(self, user_id: str, time_entry_id: Optional[str] = None,
                       limit: int = 100) -> List[Screenshot]:
        query = self.db.query(Screenshot).filter(
            Screenshot.user_id == user_id, Screenshot.status == ScreenshotStatus.CONFIRMED
        )
        if time_entry_id:
            query = query.filter(Screenshot.time_entry_id == time_entry_id)
        return query.order_by(Screenshot.captured_at.desc()).limit(limit).all()

    def _get_owned(self, screenshot_id: str, user_id: str) -> Screenshot:
        screenshot = self.db.get(Screenshot, screenshot_id)
        if not screenshot:
            raise ScreenshotNotFound()
        if screenshot.user_id != user_id:
            raise Forbidden()
        return screenshot
