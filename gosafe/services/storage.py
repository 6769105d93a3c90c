# gosafe/services/storage.py
from __future__ import annotations

import base64
import binascii
import logging
import os
import re
import secrets
import time
from pathlib import Path
from typing import Iterable, List

import boto3

from gosafe.errors import ValidationError

log = logging.getLogger(__name__)

_DATA_URI = re.compile(r"^data:image/(\w+);base64,(.+)$", re.DOTALL)


def _unique_name(content_hint: str) -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}-{os.path.basename(content_hint)}"


class S3BlobStore:
    def __init__(self, bucket: str, region: str, client=None):
        self.bucket = bucket
        self.region = region
        self.s3 = client or boto3.client("s3", region_name=region)

    def store(self, data: bytes, content_hint: str) -> str:
        key = f"reports/{_unique_name(content_hint)}"
        ext = content_hint.rsplit(".", 1)[-1].lower()
        self.s3.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=f"image/{'jpeg' if ext == 'jpg' else ext}",
        )
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"


class LocalBlobStore:
    """Writes photos under UPLOAD_DIR; the app serves that folder at /uploads."""

    def __init__(self, upload_dir: str = "./uploads"):
        self.root = Path(upload_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def store(self, data: bytes, content_hint: str) -> str:
        name = _unique_name(content_hint)
        (self.root / name).write_bytes(data)
        return f"/uploads/{name}"


def store_photos(blob_store, photos: Iterable[str], limit: int = 3) -> List[str]:
    """
    Persist up to `limit` photos and return their URLs. `data:image/...;base64,`
    payloads are decoded and stored; anything else is taken as an existing URL.
    """
    urls: List[str] = []
    for photo in list(photos)[:limit]:
        if not isinstance(photo, str) or not photo:
            continue
        if not photo.startswith("data:image"):
            urls.append(photo)
            continue
        match = _DATA_URI.match(photo)
        if not match:
            log.warning("Skipping malformed photo data URI")
            continue
        try:
            data = base64.b64decode(match.group(2), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError("Photo is not valid base64") from e
        urls.append(blob_store.store(data, f"photo.{match.group(1)}"))
    return urls
