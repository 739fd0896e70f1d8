"""
Blob Storage

Filesystem-backed buckets for dataset files and model exports.
- Put / get raw bytes under <root>/<bucket>/<path>
- Issue time-limited signed download URLs
- Verify signatures on download
"""

import hashlib
import hmac
import os
import time
from typing import Optional
from urllib.parse import quote

from automl_studio.utils.errors import NotFoundError, StorageError
from automl_studio.utils.logger import get_logger

logger = get_logger("storage")


class BlobStorage:
    def __init__(self, root_dir: str, signing_secret: str, public_base_url: str):
        self.root_dir = os.path.abspath(root_dir)
        self.signing_secret = signing_secret.encode("utf-8")
        self.public_base_url = public_base_url.rstrip("/")
        os.makedirs(self.root_dir, exist_ok=True)

    def _resolve(self, bucket: str, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root_dir, bucket, path))
        bucket_root = os.path.join(self.root_dir, bucket) + os.sep
        if not full.startswith(bucket_root):
            raise StorageError(f"Invalid storage path: {bucket}/{path}")
        return full

    def put(self, bucket: str, path: str, data: bytes) -> str:
        full = self._resolve(bucket, path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Failed to write {bucket}/{path}: {e}") from e
        logger.info(f"Stored {len(data)} bytes at {bucket}/{path}")
        return path

    def get(self, bucket: str, path: str) -> bytes:
        full = self._resolve(bucket, path)
        if not os.path.isfile(full):
            raise NotFoundError(f"Blob not found: {bucket}/{path}")
        try:
            with open(full, "rb") as f:
                return f.read()
        except OSError as e:
            raise StorageError(f"Failed to read {bucket}/{path}: {e}") from e

    def _signature(self, bucket: str, path: str, expires: int) -> str:
        message = f"{bucket}/{path}:{expires}".encode("utf-8")
        return hmac.new(self.signing_secret, message, hashlib.sha256).hexdigest()

    def signed_url(self, bucket: str, path: str, expires_in: int, now: Optional[float] = None) -> str:
        expires = int((now if now is not None else time.time()) + expires_in)
        sig = self._signature(bucket, path, expires)
        return f"{self.public_base_url}/files/{bucket}/{quote(path)}?expires={expires}&signature={sig}"

    def verify(self, bucket: str, path: str, expires: int, signature: str, now: Optional[float] = None) -> bool:
        if (now if now is not None else time.time()) > expires:
            return False
        expected = self._signature(bucket, path, expires)
        return hmac.compare_digest(expected, signature)
