"""
uploads.py — Request-scoped image batches
=========================================
Holds the uploaded photos for exactly one /analyze request.
Nothing here outlives the request: when a staging directory is configured the
files written there are removed on the way out, success or failure.
"""

import os
import time
import base64
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

from config import AnalysisConfig, MB
from errors import BadRequest

log = logging.getLogger("gateway")

# Boundaries, part headers and the small text fields on top of the image bytes
MULTIPART_OVERHEAD = 64 * 1024


class ImageUpload(BaseModel):
    filename:     str
    content_type: str
    data:         bytes

    @property
    def size(self) -> int:
        return len(self.data)

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class UploadBatch(BaseModel):
    images:            List[ImageUpload]
    question:          str = ""
    payment_reference: Optional[str] = None

    @property
    def total_bytes(self) -> int:
        return sum(img.size for img in self.images)

    @property
    def has_question(self) -> bool:
        return bool(self.question)


def _cap_text(num_bytes: int) -> str:
    if num_bytes % MB == 0:
        return f"{num_bytes // MB}MB"
    return f"{num_bytes} bytes"


def validate_batch(batch: UploadBatch, cfg: AnalysisConfig) -> None:
    """Raise BadRequest for the first rule the batch breaks."""
    if not batch.images:
        raise BadRequest("No photos uploaded")

    if len(batch.images) > cfg.max_images:
        raise BadRequest(f"Too many photos. Maximum is {cfg.max_images} per analysis.")

    for img in batch.images:
        if not (img.content_type or "").startswith("image/"):
            raise BadRequest(f"{img.filename} is not a valid image file")
        if img.size == 0:
            raise BadRequest(f"{img.filename} is empty")
        if img.size > cfg.max_bytes_per_image:
            raise BadRequest(
                f"File size too large: {img.filename}. Maximum size is {_cap_text(cfg.max_bytes_per_image)}."
            )

    if batch.total_bytes > cfg.max_batch_bytes:
        raise _batch_too_large(cfg)


def _batch_too_large(cfg: AnalysisConfig) -> BadRequest:
    return BadRequest(
        f"Total upload too large. Maximum combined size is {_cap_text(cfg.max_batch_bytes)}."
    )


def check_declared_length(content_length: Optional[int], cfg: AnalysisConfig) -> None:
    """Refuse a body whose declared size can't fit the batch cap, before it is read."""
    if content_length is not None and content_length > cfg.max_batch_bytes + MULTIPART_OVERHEAD:
        log.warning(f"Declared body of {content_length} bytes exceeds batch cap")
        raise _batch_too_large(cfg)


def _safe_name(filename: str) -> str:
    name = Path(filename or "upload").name
    return "".join(ch if ch.isalnum() or ch in "._-" else "_" for ch in name) or "upload"


@contextmanager
def staged_uploads(batch: UploadBatch, staging_dir: Optional[str]):
    """
    Write each image to staging_dir for the duration of the block and yield the
    paths. With no staging_dir nothing touches disk and an empty list is yielded.
    """
    paths: List[Path] = []
    if not staging_dir:
        yield paths
        return

    try:
        root = Path(staging_dir)
        root.mkdir(parents=True, exist_ok=True)
        stamp = int(time.time() * 1000)
        for i, img in enumerate(batch.images):
            path = root / f"{stamp}-{i}-{_safe_name(img.filename)}"
            path.write_bytes(img.data)
            paths.append(path)
        log.info(f"Staged {len(paths)} upload(s) in {root}")
        yield paths
    finally:
        for path in paths:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                log.error(f"Error cleaning up file {path.name}: {e}")
