import unittest
from datetime import timedelta
from unittest.mock import MagicMock, patch

import requests
from google.api_core.exceptions import Forbidden as GCSForbidden

from base import DatabaseTestCase, T0

from agent_gateway.core.exceptions import (
    BlobStorageError,
    DeviceMismatch,
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
from agent_gateway.models.screenshot import Screenshot, ScreenshotStatus
from agent_gateway.services.blob_store import BlobStore, GCSBlobStore
from agent_gateway.services.screenshots import ScreenshotService, media_type
from agent_gateway.services.timer import TimerService

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 64


class MemoryBlobStore(BlobStore):
    """Keeps objects in a dict; can be told to fail"""

    def __init__(self, fail=False):
        self.objects = {}
        self.fail = fail

    def key_for(self, *parts):
        return "/".join(("private",) + parts)

    def signed_put_url(self, key, content_type):
        return f"https://storage.example/{key}"

    def put(self, key, body, content_type):
        if self.fail:
            raise BlobStorageError()
        self.objects[key] = (body, content_type)


class ScreenshotTestCase(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.store = MemoryBlobStore()
        self.service = ScreenshotService(self.db, self.store)
        self.device, _, self.auth = self.pair_device()
        project = self.make_project()
        self.entry, _ = TimerService(self.db).start("u1", project.id, now=T0)

    def presign(self, now=None):
        return self.service.presign(self.auth, self.device.id, self.entry.id,
                                    captured_at=self.at(30), now=now or self.at(31))


class TestPresign(ScreenshotTestCase):

    def test_presign_creates_placeholder(self):
        shot = self.presign()
        self.assertEqual(shot.status, ScreenshotStatus.PRESIGNED)
        self.assertTrue(shot.has_placeholder_key)
        self.assertEqual(shot.time_entry_id, self.entry.id)
        self.assertEqual(shot.project_id, self.entry.project_id)
        self.assertEqual(shot.upload_expires_at, self.at(31) + timedelta(seconds=900))

    def test_presign_for_foreign_entry(self):
        other, _, other_auth = self.pair_device(user_id="u2")
        with self.assertRaises(TimeEntryNotFound):
            self.service.presign(other_auth, other.id, self.entry.id, captured_at=T0)

    def test_presign_device_mismatch(self):
        with self.assertRaises(DeviceMismatch):
            self.service.presign(self.auth, "another-device", self.entry.id, captured_at=T0)


class TestUpload(ScreenshotTestCase):

    def test_upload_then_confirm(self):
        shot = self.presign()
        uploaded = self.service.upload(self.auth, shot.id, PNG, "image/png", now=self.at(60))

        key = f"private/agent-screenshots/{shot.id}.png"
        self.assertEqual(uploaded.storage_key, key)
        self.assertEqual(uploaded.size_bytes, len(PNG))
        self.assertEqual(self.store.objects[key], (PNG, "image/png"))

        confirmed = self.service.confirm(self.auth, shot.id, self.device.id)
        self.assertEqual(confirmed.status, ScreenshotStatus.CONFIRMED)
        # Confirming twice is harmless
        self.assertEqual(self.service.confirm(self.auth, shot.id, self.device.id).status,
                         ScreenshotStatus.CONFIRMED)

    def test_confirm_before_upload(self):
        shot = self.presign()
        with self.assertRaises(UploadNotReceived):
            self.service.confirm(self.auth, shot.id, self.device.id)

    def test_declared_png_with_jpeg_body(self):
        shot = self.presign()
        with self.assertRaises(InvalidImageFormat):
            self.service.upload(self.auth, shot.id, JPEG, "image/png", now=self.at(60))
        self.assertEqual(self.store.objects, {})
        with self.assertRaises(UploadNotReceived):
            self.service.confirm(self.auth, shot.id, self.device.id)

    def test_non_image_content_type(self):
        shot = self.presign()
        with self.assertRaises(UnsupportedMediaType):
            self.service.upload(self.auth, shot.id, PNG, "application/octet-stream")
        with self.assertRaises(UnsupportedMediaType):
            self.service.upload(self.auth, shot.id, PNG, None)

    def test_empty_body(self):
        shot = self.presign()
        with self.assertRaises(EmptyPayload):
            self.service.upload(self.auth, shot.id, b"", "image/png")

    def test_oversize_body(self):
        shot = self.presign()
        body = PNG + b"\x00" * (5 * 1024 * 1024)
        with self.assertRaises(PayloadTooLarge) as ctx:
            self.service.upload(self.auth, shot.id, body, "image/png")
        self.assertEqual(ctx.exception.extra["max_bytes"], 5 * 1024 * 1024)

    def test_body_at_size_limit(self):
        shot = self.presign()
        body = PNG + b"\x00" * (5 * 1024 * 1024 - len(PNG))
        uploaded = self.service.upload(self.auth, shot.id, body, "image/png", now=self.at(60))
        self.assertEqual(uploaded.size_bytes, 5 * 1024 * 1024)

    def test_checks_run_before_lookup(self):
        # Body validation wins over an unknown id
        with self.assertRaises(InvalidImageFormat):
            self.service.upload(self.auth, "missing", JPEG, "image/png")
        with self.assertRaises(ScreenshotNotFound):
            self.service.upload(self.auth, "missing", PNG, "image/png")

    def test_other_users_screenshot(self):
        shot = self.presign()
        _, _, intruder = self.pair_device(user_id="u2")
        with self.assertRaises(Forbidden):
            self.service.upload(intruder, shot.id, PNG, "image/png")

    def test_relay_failure_leaves_placeholder(self):
        shot = self.presign()
        self.service.blob_store = MemoryBlobStore(fail=True)
        with self.assertRaises(BlobStorageError):
            self.service.upload(self.auth, shot.id, PNG, "image/png", now=self.at(60))

        self.db.refresh(shot)
        self.assertEqual(shot.status, ScreenshotStatus.PRESIGNED)
        self.assertTrue(shot.has_placeholder_key)
        with self.assertRaises(UploadNotReceived):
            self.service.confirm(self.auth, shot.id, self.device.id)

        # A retry inside the window succeeds
        self.service.blob_store = self.store
        self.service.upload(self.auth, shot.id, PNG, "image/png", now=self.at(90))
        self.service.confirm(self.auth, shot.id, self.device.id)

    def test_upload_window_expired(self):
        shot = self.presign(now=self.at(31))
        with self.assertRaises(UploadWindowExpired):
            self.service.upload(self.auth, shot.id, PNG, "image/png", now=self.at(31 + 901))

    def test_storage_not_configured(self):
        shot = self.presign()
        self.service.blob_store = None
        with self.assertRaises(StorageNotConfigured):
            self.service.upload(self.auth, shot.id, PNG, "image/png", now=self.at(60))

    def test_upload_after_confirm_is_noop(self):
        shot = self.presign()
        self.service.upload(self.auth, shot.id, PNG, "image/png", now=self.at(60))
        self.service.confirm(self.auth, shot.id, self.device.id)
        self.store.objects.clear()
        self.service.upload(self.auth, shot.id, PNG, "image/png", now=self.at(70))
        self.assertEqual(self.store.objects, {})

    def test_media_type(self):
        self.assertEqual(media_type("Image/PNG; charset=binary"), "image/png")
        self.assertEqual(media_type(None), "")


class TestListing(ScreenshotTestCase):

    def test_only_confirmed_are_listed(self):
        done = self.presign()
        self.service.upload(self.auth, done.id, PNG, "image/png", now=self.at(60))
        self.service.confirm(self.auth, done.id, self.device.id)
        uploaded_only = self.presign()
        self.service.upload(self.auth, uploaded_only.id, PNG, "image/png", now=self.at(60))
        self.presign()

        listed = self.service.list_confirmed("u1")
        self.assertEqual([s.id for s in listed], [done.id])
        self.assertEqual(self.service.list_confirmed("u2"), [])
        self.assertEqual(self.service.list_confirmed("u1", time_entry_id="other"), [])
        self.assertEqual(self.db.query(Screenshot).count(), 3)


class TestGCSBlobStore(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.blob = self.client.bucket.return_value.blob.return_value
        self.blob.generate_signed_url.return_value = "https://storage.googleapis.com/signed"
        self.store = GCSBlobStore("screens", prefix="/private/", client=self.client,
                                  signed_url_ttl_seconds=120, timeout_seconds=5)

    def test_key_for(self):
        self.assertEqual(self.store.key_for("agent-screenshots", "/a.png"), "private/agent-screenshots/a.png")
        self.assertEqual(GCSBlobStore("b", client=self.client).key_for("x", "y"), "x/y")

    def test_signed_put_url(self):
        url = self.store.signed_put_url("private/a.png", "image/png")
        self.assertEqual(url, "https://storage.googleapis.com/signed")
        self.client.bucket.assert_called_once_with("screens")
        self.blob.generate_signed_url.assert_called_once_with(
            version="v4", expiration=timedelta(seconds=120), method="PUT", content_type="image/png",
        )

    def test_signing_failure(self):
        self.blob.generate_signed_url.side_effect = GCSForbidden("denied")
        with self.assertRaises(BlobStorageError):
            self.store.signed_put_url("private/a.png", "image/png")

    @patch("agent_gateway.services.blob_store.requests.put")
    def test_put(self, mock_put):
        mock_put.return_value.raise_for_status.return_value = None
        self.store.put("private/a.png", PNG, "image/png")
        mock_put.assert_called_once_with(
            "https://storage.googleapis.com/signed",
            data=PNG,
            headers={"Content-Type": "image/png"},
            timeout=5,
        )

    @patch("agent_gateway.services.blob_store.requests.put")
    def test_put_failure(self, mock_put):
        mock_put.return_value.raise_for_status.side_effect = requests.HTTPError("403")
        with self.assertRaises(BlobStorageError):
            self.store.put("private/a.png", PNG, "image/png")

    @patch("agent_gateway.services.blob_store.requests.put")
    def test_put_timeout(self, mock_put):
        mock_put.side_effect = requests.Timeout()
        with self.assertRaises(BlobStorageError):
            self.store.put("private/a.png", PNG, "image/png")


if __name__ == '__main__':
    unittest.main()
