"""
Pairing and device registry
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from agent_gateway.core.config import settings
from agent_gateway.core.exceptions import (
    DeviceNotFound,
    DeviceRevoked,
    InvalidDeviceCredentials,
    InvalidPairingCode,
    PairingCodeAlreadyUsed,
    PairingCodeExpired,
)
from agent_gateway.core.security import (
    constant_time_equals,
    generate_device_secret,
    generate_pairing_code,
    hash_secret,
    utcnow,
)
from agent_gateway.models.device import Device
from agent_gateway.models.pairing_code import PairingCode
from agent_gateway.services.credentials import AccessCredential, CredentialIssuer

logger = structlog.get_logger(__name__)

MAX_CODE_ATTEMPTS = 5


@dataclass
class DeviceMeta:
    name: str
    os: Optional[str] = None
    client_version: Optional[str] = None


@dataclass
class PairingResult:
    device: Device
    device_secret: str
    credential: AccessCredential


class DeviceRegistry:
    """Issues pairing codes, registers devices and refreshes their credentials"""

    def __init__(self, db: Session, issuer: CredentialIssuer):
        self.db = db
        self.issuer = issuer

    def begin_pairing(self, user_id: str, now: Optional[datetime] = None) -> PairingCode:
        """Create a one-time code for ``user_id``.

        Codes are short, so a collision with a live code is possible; retry a
        few times with a fresh one. Dead codes keep their row for audit, which
        means even an expired duplicate blocks the unique index.
        """
        now = now or utcnow()
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_pairing_code(settings.pairing_code_length)
            if self.db.query(PairingCode.id).filter(PairingCode.code == code).first():
                continue
            record = PairingCode(
                user_id=user_id,
                code=code,
                expires_at=now + timedelta(seconds=settings.pairing_code_ttl_seconds),
                created_at=now,
            )
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
            logger.info("Pairing code created", user_id=user_id, expires_at=record.expires_at.isoformat())
            return record
        raise RuntimeError("Could not allocate a unique pairing code")

    def complete_pairing(self, code: str, meta: DeviceMeta, now: Optional[datetime] = None) -> PairingResult:
        now = now or utcnow()
        record = self.db.query(PairingCode).filter(PairingCode.code == code.upper()).first()
        if not record:
            raise InvalidPairingCode()
        if record.used_at is not None:
            raise PairingCodeAlreadyUsed()
        if record.is_expired(now):
            raise PairingCodeExpired()

        device_secret = generate_device_secret(settings.device_secret_bytes)
        device = Device(
            user_id=record.user_id,
            name=meta.name,
            os=meta.os,
            client_version=meta.client_version,
            secret_hash=hash_secret(device_secret),
            last_seen_at=now,
            created_at=now,
        )
        self.db.add(device)
        self.db.flush()

        # Conditional update so two concurrent redemptions cannot both win
        claimed = self.db.execute(
            update(PairingCode)
            .where(PairingCode.id == record.id, PairingCode.used_at.is_(None))
            .values(used_at=now, device_id=device.id)
        ).rowcount
        if claimed != 1:
            self.db.rollback()
            raise PairingCodeAlreadyUsed()
        self.db.commit()
        self.db.refresh(device)

        credential = self.issuer.issue(device.id, device.user_id, now=now)
        logger.info("Device paired", device_id=device.id, user_id=device.user_id, os=device.os)
        return PairingResult(device=device, device_secret=device_secret, credential=credential)

    def refresh_credential(self, device_id: str, presented_secret: str, now: Optional[datetime] = None) -> AccessCredential:
        now = now or utcnow()
        device = self.db.get(Device, device_id)
        if not device or not constant_time_equals(device.secret_hash, hash_secret(presented_secret)):
            logger.warning("Credential refresh rejected", device_id=device_id)
            raise InvalidDeviceCredentials()
        if device.is_revoked:
            logger.warning("Credential refresh for revoked device", device_id=device_id)
            raise DeviceRevoked()

        device.last_seen_at = now
        self.db.commit()
        logger.info("Access credential refreshed", device_id=device.id)
        return self.issuer.issue(device.id, device.user_id, now=now)

    def revoke_device(self, device_id: str, owner_id: str, now: Optional[datetime] = None) -> Device:
        device = self.db.get(Device, device_id)
        if not device or device.user_id != owner_id:
            raise DeviceNotFound()
        if device.revoked_at is None:
            device.revoked_at = now or utcnow()
            self.db.commit()
            logger.info("Device revoked", device_id=device.id, user_id=owner_id)
        return device

    def list_devices(self, user_id: str) -> List[Device]:
        return (
            self.db.query(Device)
            .filter(Device.user_id == user_id)
            .order_by(Device.created_at.desc())
            .all()
        )

    def require_active_device(self, device_id: str, user_id: str) -> Device:
        """Device behind an access credential, refusing revoked ones"""
        device = self.db.get(Device, device_id)
        if not device or device.user_id != user_id:
            raise DeviceNotFound()
        if device.is_revoked:
            raise DeviceRevoked()
        return device

    def touch(self, device_id: str, now: Optional[datetime] = None) -> None:
        """Bump last-seen without committing"""
        self.db.execute(
            update(Device).where(Device.id == device_id).values(last_seen_at=now or utcnow())
        )
