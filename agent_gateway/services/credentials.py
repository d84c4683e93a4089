"""
Stateless access credentials for paired devices.

Tokens are HS256 JWTs signed with a server-held key. Verification needs no
database lookup, so there is no revocation list: a token issued before its
device was revoked stays valid until it expires. Revocation takes effect at the
device's next refresh. Keep ``access_token_ttl_seconds`` short.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog

from agent_gateway.core.config import settings
from agent_gateway.core.exceptions import AccessTokenExpired, InvalidAccessToken
from agent_gateway.core.security import as_naive_utc, generate_signing_key, utcnow

logger = structlog.get_logger(__name__)

ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["sub", "uid", "iat", "exp"]


@dataclass
class AccessCredential:
    token: str
    device_id: str
    user_id: str
    issued_at: datetime
    expires_at: datetime


def _claim_time(value: int) -> datetime:
    return as_naive_utc(datetime.fromtimestamp(value, tz=timezone.utc))


class CredentialIssuer:
    """Mints and verifies access credentials bound to (device, user)"""

    def __init__(self, secret: Optional[str] = None, ttl_seconds: int = 3600):
        if not secret:
            logger.warning(
                "No access token secret configured, using an ephemeral key; "
                "all access credentials become invalid when the process restarts"
            )
            secret = generate_signing_key()
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, device_id: str, user_id: str, now: Optional[datetime] = None) -> AccessCredential:
        now = (now or utcnow()).replace(microsecond=0)
        expires_at = now + timedelta(seconds=self.ttl_seconds)
        payload = {
            "sub": device_id,
            "uid": user_id,
            "iat": now.replace(tzinfo=timezone.utc),
            "exp": expires_at.replace(tzinfo=timezone.utc),
        }
        token = jwt.encode(payload, self._secret, algorithm=ALGORITHM)
        return AccessCredential(
            token=token,
            device_id=device_id,
            user_id=user_id,
            issued_at=now,
            expires_at=expires_at,
        )

    def verify(self, token: str, now: Optional[datetime] = None) -> AccessCredential:
        """Return the credential encoded in ``token`` or raise.

        The library rejects a bad signature before any claim is looked at, so a
        tampered token fails regardless of its claimed expiry. Against the wall
        clock the library also checks ``exp``; an explicit ``now`` is compared
        here instead, and a token is still valid at exactly ``exp``.
        """
        options = {"require": REQUIRED_CLAIMS, "verify_exp": now is None}
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options=options,
            )
            device_id = str(payload["sub"])
            user_id = str(payload["uid"])
            issued_at = _claim_time(int(payload["iat"]))
            expires_at = _claim_time(int(payload["exp"]))
        except jwt.ExpiredSignatureError:
            raise AccessTokenExpired()
        except (jwt.InvalidTokenError, ValueError, TypeError):
            raise InvalidAccessToken()

        now = now or utcnow()
        if now > expires_at:
            raise AccessTokenExpired()

        return AccessCredential(
            token=token,
            device_id=device_id,
            user_id=user_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )


_issuer: Optional[CredentialIssuer] = None


def get_credential_issuer() -> CredentialIssuer:
    """Process-wide issuer built from settings"""
    global _issuer
    if _issuer is None:
        _issuer = CredentialIssuer(settings.access_token_secret, settings.access_token_ttl_seconds)
    return _issuer
