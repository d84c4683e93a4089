"""
Credential primitives: code generation, secret hashing, comparison
"""

import hashlib
import secrets
from datetime import datetime, timezone

# No I, O, 0 or 1 so codes survive being read aloud or typed from a screen
PAIRING_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every datetime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def generate_pairing_code(length: int = 6) -> str:
    return "".join(secrets.choice(PAIRING_CODE_ALPHABET) for _ in range(length))


def generate_device_secret(n_bytes: int = 48) -> str:
    return secrets.token_hex(n_bytes)


def generate_signing_key() -> str:
    return secrets.token_hex(32)


def hash_secret(secret: str) -> str:
    """One-way SHA-256 hex digest of a long-lived secret."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def constant_time_equals(a, b) -> bool:
    if isinstance(a, str):
        a = a.encode("utf-8")
    if isinstance(b, str):
        b = b.encode("utf-8")
    return secrets.compare_digest(a, b)
