"""
Media collaborator: durable storage for uploaded files plus duration probing.

Routers never talk to storage directly. They depend on ``get_media_service``
which returns an object with two methods:

    upload(local_path) -> public URL, or None when the upload failed
    probe_duration(local_path) -> duration in seconds, or None

Tests swap the whole thing out through ``app.dependency_overrides``.
"""

import logging
import mimetypes
import shutil
import subprocess
import uuid
from functools import lru_cache
from pathlib import Path
from typing import Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from vidtube.config import settings

logger = logging.getLogger("media")


class MediaService(Protocol):
    def upload(self, local_path: str) -> Optional[str]: ...

    def probe_duration(self, local_path: str) -> Optional[float]: ...


def probe_duration(local_path: str) -> Optional[float]:
    """Read the container duration with ffprobe. Returns None if unknown."""
    try:
        result = subprocess.run(
            [
                settings.FFPROBE_BINARY, "-v", "error",
                "-show_entries", "format=duration",
                "-of", "default=noprint_wrappers=1:nokey=1",
                local_path,
            ],
            capture_output=True, text=True, timeout=settings.FFPROBE_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.error(f"ffprobe could not run on {local_path}: {e}")
        return None

    if result.returncode != 0:
        logger.warning(f"ffprobe exited with {result.returncode} for {local_path}: {result.stderr.strip()}")
        return None

    try:
        duration = float(result.stdout.strip())
    except ValueError:
        logger.warning(f"ffprobe returned no duration for {local_path}")
        return None
    return duration if duration > 0 else None


def _object_name(local_path: str) -> str:
    return f"{uuid.uuid4().hex}{Path(local_path).suffix.lower()}"


class LocalMediaService:
    """Copies files under MEDIA_ROOT. Used in development."""

    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def upload(self, local_path: str) -> Optional[str]:
        name = _object_name(local_path)
        try:
            shutil.copyfile(local_path, self.root / name)
        except OSError as e:
            logger.error(f"Local upload of {local_path} failed: {e}")
            return None
        return f"{self.base_url}/{name}"

    def probe_duration(self, local_path: str) -> Optional[float]:
        return probe_duration(local_path)


class S3MediaService:
    """Pushes files to an S3 (or S3-compatible) bucket."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        public_base_url: Optional[str] = None,
        key_prefix: str = "uploads",
        client=None,
    ):
        if not bucket:
            raise RuntimeError("S3_BUCKET must be set when MEDIA_BACKEND=s3")
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url
        self.key_prefix = key_prefix.strip("/")
        self.client = client or boto3.client("s3", endpoint_url=endpoint_url)

    def object_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def upload(self, local_path: str) -> Optional[str]:
        name = _object_name(local_path)
        key = f"{self.key_prefix}/{name}" if self.key_prefix else name
        content_type = mimetypes.guess_type(local_path)[0] or "application/octet-stream"
        try:
            self.client.upload_file(local_path, self.bucket, key, ExtraArgs={"ContentType": content_type})
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 upload of {local_path} to {self.bucket}/{key} failed: {e}")
            return None
        logger.info(f"Uploaded {local_path} to s3://{self.bucket}/{key}")
        return self.object_url(key)

    def probe_duration(self, local_path: str) -> Optional[float]:
        return probe_duration(local_path)


@lru_cache(maxsize=1)
def get_media_service() -> MediaService:
    """FastAPI dependency returning the configured media backend."""
    if settings.MEDIA_BACKEND == "s3":
        return S3MediaService(
            bucket=settings.S3_BUCKET,
            endpoint_url=settings.S3_ENDPOINT_URL,
            public_base_url=settings.S3_PUBLIC_BASE_URL,
            key_prefix=settings.S3_KEY_PREFIX,
        )
    return LocalMediaService(settings.MEDIA_ROOT, settings.MEDIA_BASE_URL)
