"""Binary uploads for planner photos and vendor licenses.

The bucket client is synchronous, so writes run in Starlette's threadpool and
are awaited before the owning record is touched. When no bucket is
configured the upload is skipped and a placeholder URL is linked instead.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, Optional, Tuple
import logging
import os
import time

import firebase_admin
from firebase_admin import credentials, storage
from starlette.concurrency import run_in_threadpool

from planit.identity import authorize_self_or_admin
from planit.shared.utils import BadRequestException, NotFoundException, settings
from planit.store import ProfileKind, ProfileStore

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "planit"
PUBLIC_URL_BASE = "https://storage.googleapis.com"
MOCK_URL_BASE = "https://mock-storage.com"


@dataclass(frozen=True)
class AssetRule:
    kind: ProfileKind
    allowed_types: FrozenSet[str]
    max_bytes: int
    key_prefix: str
    mock_prefix: str
    url_field: str
    timestamp_field: Optional[str] = None


PROFILE_PHOTO = AssetRule(
    kind=ProfileKind.PLANNER,
    allowed_types=frozenset({"image/jpeg", "image/png", "image/webp"}),
    max_bytes=settings.MAX_PHOTO_BYTES,
    key_prefix="planners/",
    mock_prefix="planners/",
    url_field="profile_photo",
)

VENDOR_LICENSE = AssetRule(
    kind=ProfileKind.VENDOR,
    allowed_types=frozenset({"application/pdf", "image/jpeg", "image/png"}),
    max_bytes=settings.MAX_LICENSE_BYTES,
    key_prefix="vendors/licenses/",
    mock_prefix="vendors/",
    url_field="license_url",
    timestamp_field="license_uploaded_at",
)


class BucketAssetStore:
    """Thin async wrapper over a google-cloud-storage bucket."""

    def __init__(self, bucket):
        self.bucket = bucket

    @property
    def name(self) -> str:
        return self.bucket.name

    async def put(self, key: str, data: bytes, content_type: str):
        blob = self.bucket.blob(key)
        await run_in_threadpool(blob.upload_from_string, data, content_type=content_type)

    async def make_public(self, key: str):
        blob = self.bucket.blob(key)
        await run_in_threadpool(blob.make_public)

    def public_url(self, key: str) -> str:
        return f"{PUBLIC_URL_BASE}/{self.name}/{key}"


def build_asset_store(settings) -> Optional[BucketAssetStore]:
    if not settings.FIREBASE_STORAGE_BUCKET:
        logger.warning("Firebase storage not configured, uploads will link mock URLs")
        return None

    try:
        try:
            fb_app = firebase_admin.get_app(FIREBASE_APP_NAME)
        except ValueError:
            cred = credentials.Certificate({
                "type": "service_account",
                "project_id": settings.FIREBASE_PROJECT_ID,
                "client_email": settings.FIREBASE_CLIENT_EMAIL,
                "private_key": (settings.FIREBASE_PRIVATE_KEY or "").replace("\\n", "\n"),
                "token_uri": "https://oauth2.googleapis.com/token",
            })
            fb_app = firebase_admin.initialize_app(
                cred, {"storageBucket": settings.FIREBASE_STORAGE_BUCKET}, name=FIREBASE_APP_NAME
            )
        bucket = storage.bucket(app=fb_app)
    except Exception:
        # Degraded mode: keep serving, link mock URLs
        logger.warning("Firebase not initialized, uploads will link mock URLs", exc_info=True)
        return None

    logger.info(f"Firebase storage initialized for bucket {bucket.name}")
    return BucketAssetStore(bucket)


def storage_key(rule: AssetRule, owner_id: str, original_name: str, now: Optional[float] = None) -> str:
    millis = int((now if now is not None else time.time()) * 1000)
    ext = os.path.splitext(original_name or "")[1].lower()
    return f"{rule.key_prefix}{owner_id}-{millis}{ext}"


def mock_url(rule: AssetRule, original_name: str) -> str:
    return f"{MOCK_URL_BASE}/{rule.mock_prefix}{original_name}"


async def read_upload(rule: AssetRule, file) -> Optional[bytes]:
    """Read at most one byte past the limit so oversized uploads are caught without buffering them."""
    if file is None:
        return None
    return await file.read(rule.max_bytes + 1)


def validate_upload(rule: AssetRule, data: Optional[bytes], content_type: Optional[str]):
    if not data:
        raise BadRequestException("No file uploaded")
    if content_type not in rule.allowed_types:
        allowed = ", ".join(sorted(rule.allowed_types))
        raise BadRequestException(f"Invalid file type '{content_type}'. Allowed: {allowed}")
    if len(data) > rule.max_bytes:
        raise BadRequestException(f"File too large. Maximum size is {rule.max_bytes // (1024 * 1024)}MB")


async def upload_and_link(
    store: ProfileStore,
    assets: Optional[BucketAssetStore],
    rule: AssetRule,
    owner_id: str,
    data: Optional[bytes],
    content_type: Optional[str],
    original_name: str,
    caller: dict,
) -> Tuple[str, dict]:
    record = await store.get_profile(rule.kind, owner_id)
    if not record:
        raise NotFoundException(f"{rule.kind.value.capitalize()} not found")
    authorize_self_or_admin(record["user_id"], caller)

    validate_upload(rule, data, content_type)

    if assets is not None:
        key = storage_key(rule, record["id"], original_name)
        await assets.put(key, data, content_type)
        await assets.make_public(key)
        file_url = assets.public_url(key)
        logger.info("Asset stored", extra={"profile_id": record["id"], "storage_key": key})
    else:
        file_url = mock_url(rule, original_name)
        logger.warning("Mock upload, asset storage inactive", extra={"profile_id": record["id"]})

    changes = {rule.url_field: file_url}
    if rule.timestamp_field:
        changes[rule.timestamp_field] = datetime.utcnow()

    updated = await store.update_profile(rule.kind, record["id"], changes)
    if not updated:
        raise NotFoundException(f"{rule.kind.value.capitalize()} not found")
    return file_url, updated
