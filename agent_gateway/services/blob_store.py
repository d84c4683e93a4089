"""
Durable blob storage for screenshot binaries.

Bytes are written through short-lived V4 signed PUT URLs so the credentials that
sign them never leave this module.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Optional

import requests
import structlog
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from agent_gateway.core.config import settings
from agent_gateway.core.exceptions import BlobStorageError

logger = structlog.get_logger(__name__)


class BlobStore:
    """Interface used by the screenshot pipeline"""

    def key_for(self, *parts: str) -> str:
        raise NotImplementedError

    def signed_put_url(self, key: str, content_type: str) -> str:
        raise NotImplementedError

    def put(self, key: str, body: bytes, content_type: str) -> None:
        raise NotImplementedError


class GCSBlobStore(BlobStore):
    """Google Cloud Storage backed store"""

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        project_id: Optional[str] = None,
        signed_url_ttl_seconds: int = 300,
        timeout_seconds: int = 30,
        client: Optional[storage.Client] = None,
    ):
        self.bucket_name = bucket
        self.prefix = prefix.strip("/")
        self.project_id = project_id
        self.signed_url_ttl_seconds = signed_url_ttl_seconds
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._bucket = None

    @property
    def bucket(self) -> storage.Bucket:
        """Get bucket object (lazy initialization)."""
        if self._bucket is None:
            if self._client is None:
                self._client = storage.Client(project=self.project_id)
            self._bucket = self._client.bucket(self.bucket_name)
        return self._bucket

    def key_for(self, *parts: str) -> str:
        clean_parts = [part.strip("/") for part in parts if part.strip("/")]
        key = "/".join(clean_parts)
        if self.prefix:
            return f"{self.prefix}/{key}"
        return key

    def signed_put_url(self, key: str, content_type: str) -> str:
        try:
            return self.bucket.blob(key).generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=self.signed_url_ttl_seconds),
                method="PUT",
                content_type=content_type,
            )
        except (GoogleAPIError, GoogleAuthError, AttributeError) as e:
            # AttributeError: credentials without a private key cannot sign
            logger.error("Failed to sign upload URL", key=key, error=str(e))
            raise BlobStorageError("Could not sign upload URL") from e

    def put(self, key: str, body: bytes, content_type: str) -> None:
        url = self.signed_put_url(key, content_type)
        try:
            response = requests.put(
                url,
                data=body,
                headers={"Content-Type": content_type},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Object storage upload failed", key=key, error=str(e))
            raise BlobStorageError() from e
        logger.debug("Object stored", key=key, size_bytes=len(body))


@lru_cache()
def get_blob_store() -> Optional[BlobStore]:
    """Configured store, or None when no bucket is set"""
    if not settings.blob_bucket:
        return None
    return GCSBlobStore(
        bucket=settings.blob_bucket,
        prefix=settings.blob_prefix,
        project_id=settings.gcp_project_id,
        signed_url_ttl_seconds=settings.blob_signed_url_ttl_seconds,
        timeout_seconds=settings.blob_upload_timeout_seconds,
    )
