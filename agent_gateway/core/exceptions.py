"""
Domain errors for the Agent Gateway.

Every error is scoped to one request. The ``category`` tells the agent how to
react: ``input`` errors must not be retried unchanged, ``credential`` errors mean
refresh (expired token) or re-pair (revoked device, bad secret), ``conflict``
errors may mean the request was already applied, ``integrity`` errors are never
coerced.
"""

from typing import Any, Dict, Optional


class AgentGatewayError(Exception):
    """Base class for errors returned to the caller."""

    status_code = 400
    code = "error"
    category = "input"
    message = "Request failed"

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        self.message = message or self.message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "code": self.code, "category": self.category}
        body.update(self.extra)
        return body


# Caller input

class InvalidRequest(AgentGatewayError):
    code = "invalid_request"
    message = "Invalid request"


class EmptyPayload(AgentGatewayError):
    code = "empty_payload"
    message = "Empty body"


# Credentials

class CredentialError(AgentGatewayError):
    status_code = 401
    category = "credential"


class NotAuthenticated(CredentialError):
    code = "not_authenticated"
    message = "Authentication required"


class InvalidAccessToken(CredentialError):
    code = "invalid_access_token"
    message = "Invalid access token"


class AccessTokenExpired(CredentialError):
    code = "access_token_expired"
    message = "Access token expired"


class InvalidDeviceCredentials(CredentialError):
    code = "invalid_device_credentials"
    message = "Invalid device credentials"


class DeviceRevoked(CredentialError):
    code = "device_revoked"
    message = "Device has been revoked"


class DeviceMismatch(CredentialError):
    status_code = 403
    code = "device_mismatch"
    message = "Device does not match access token"


class Forbidden(CredentialError):
    status_code = 403
    code = "forbidden"
    message = "Forbidden"


# Not found

class NotFoundError(AgentGatewayError):
    status_code = 404
    category = "not_found"


class DeviceNotFound(NotFoundError):
    code = "device_not_found"
    message = "Device not found"


class TimeEntryNotFound(NotFoundError):
    code = "time_entry_not_found"
    message = "Time entry not found"


class ProjectNotFound(NotFoundError):
    code = "project_not_found"
    message = "Project not found"


class ScreenshotNotFound(NotFoundError):
    code = "screenshot_not_found"
    message = "Screenshot not found"


# State conflicts

class ConflictError(AgentGatewayError):
    status_code = 409
    category = "conflict"


class InvalidPairingCode(ConflictError):
    status_code = 400
    code = "invalid_pairing_code"
    message = "Invalid pairing code"


class PairingCodeAlreadyUsed(ConflictError):
    status_code = 400
    code = "pairing_code_already_used"
    message = "Pairing code already used"


class PairingCodeExpired(ConflictError):
    status_code = 400
    code = "pairing_code_expired"
    message = "Pairing code expired"


class ActiveEntryExists(ConflictError):
    code = "active_entry_exists"
    message = "An active time entry already exists"


class InvalidTimerState(ConflictError):
    code = "invalid_timer_state"
    message = "Time entry is not in the required state"


class UploadNotReceived(ConflictError):
    code = "upload_not_received"
    message = "Screenshot upload not yet received"


class UploadWindowExpired(ConflictError):
    code = "upload_window_expired"
    message = "Screenshot upload window has expired"


# Integrity

class IntegrityFailure(AgentGatewayError):
    category = "integrity"


class UnsupportedMediaType(IntegrityFailure):
    status_code = 415
    code = "unsupported_media_type"
    message = "Content-Type must be an image type"


class InvalidImageFormat(IntegrityFailure):
    status_code = 415
    code = "invalid_format"
    message = "Not a valid PNG file"


class PayloadTooLarge(IntegrityFailure):
    status_code = 413
    code = "payload_too_large"
    message = "Screenshot exceeds size limit"


# Collaborators

class UnavailableError(AgentGatewayError):
    status_code = 503
    category = "unavailable"


class StorageNotConfigured(UnavailableError):
    code = "storage_not_configured"
    message = "Object storage not configured"


class BlobStorageError(UnavailableError):
    status_code = 502
    code = "blob_storage_error"
    message = "Upload to object storage failed"
