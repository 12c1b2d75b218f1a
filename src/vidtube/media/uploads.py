import logging
import os
import re
import shutil
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from fastapi import UploadFile

from vidtube.config import settings

logger = logging.getLogger("media")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def has_file(upload: Optional[UploadFile]) -> bool:
    """True when the multipart field carried an actual file."""
    return upload is not None and bool(upload.filename)


def save_upload(upload: UploadFile, directory: Optional[str] = None) -> str:
    """Write a multipart upload to the temp directory and return its path."""
    target_dir = Path(directory or settings.UPLOAD_TEMP_DIR)
    target_dir.mkdir(parents=True, exist_ok=True)
    safe_name = _UNSAFE_CHARS.sub("_", os.path.basename(upload.filename or "upload")) or "upload"
    path = target_dir / f"{uuid.uuid4().hex}-{safe_name}"
    upload.file.seek(0)
    with open(path, "wb") as dest:
        shutil.copyfileobj(upload.file, dest, length=1024 * 1024)
    return str(path)


@contextmanager
def staged_upload(upload: UploadFile) -> Iterator[str]:
    """Stage an upload on local disk for the duration of the block."""
    path = save_upload(upload)
    try:
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove staged upload {path}: {e}")
