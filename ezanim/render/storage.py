"""Object storage for rendered videos.

R2Storage talks to Cloudflare R2 through boto3's S3 client. LocalStorage
copies files into a directory that the HTTP server exposes under /files,
for development without a bucket.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional

import boto3

from ezanim.config import (
    LOCAL_STORAGE_DIR,
    PRESIGN_EXPIRES,
    PUBLIC_BASE_URL,
    R2_ACCESS_KEY,
    R2_BUCKET,
    R2_ENDPOINT,
    R2_PUBLIC_URL,
    R2_SECRET_KEY,
    STORAGE_DRIVER,
)

logger = logging.getLogger(__name__)


def video_key(request_id: str, version: int) -> str:
    return f"videos/{request_id}/v{version}.mp4"


class R2Storage:
    def __init__(
        self,
        bucket: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        public_url: Optional[str] = None,
        presign_expires: int = PRESIGN_EXPIRES,
        client=None,
    ):
        self.bucket = bucket or R2_BUCKET
        if not self.bucket:
            raise ValueError("R2_BUCKET not found in environment")
        self.public_base = (public_url or R2_PUBLIC_URL or "").rstrip("/")
        self.presign_expires = presign_expires
        self._s3 = client or boto3.client(
            "s3",
            region_name="auto",
            endpoint_url=endpoint_url or R2_ENDPOINT,
            aws_access_key_id=access_key or R2_ACCESS_KEY,
            aws_secret_access_key=secret_key or R2_SECRET_KEY,
        )

    async def upload(self, local_path: Path, key: str, content_type: str = "video/mp4") -> str:
        await asyncio.to_thread(
            self._s3.upload_file,
            str(local_path),
            self.bucket,
            key,
            ExtraArgs={"ContentType": content_type},
        )
        logger.info("Uploaded %s to r2://%s/%s", Path(local_path).name, self.bucket, key)
        return key

    async def public_url(self, key: str) -> str:
        """Public URL when a public base is configured, otherwise a presigned GET."""
        if self.public_base:
            return f"{self.public_base}/{key}"
        return await asyncio.to_thread(
            self._s3.generate_presigned_url,
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=self.presign_expires,
        )

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._s3.delete_object, Bucket=self.bucket, Key=key)


class LocalStorage:
    def __init__(self, root: str = LOCAL_STORAGE_DIR, base_url: str = PUBLIC_BASE_URL):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def path_for(self, key: str) -> Path:
        """Resolve *key* inside the storage root, rejecting escapes."""
        root = self.root.resolve()
        path = (root / key).resolve()
        if root not in path.parents:
            raise ValueError(f"Storage key escapes the storage root: {key}")
        return path

    async def upload(self, local_path: Path, key: str, content_type: str = "video/mp4") -> str:
        target = self.path_for(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copyfile, local_path, target)
        logger.info("Stored %s at %s", Path(local_path).name, target)
        return key

    async def public_url(self, key: str) -> str:
        return f"{self.base_url}/files/{key}"

    async def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


def build_storage(driver: str = STORAGE_DRIVER):
    if driver == "local":
        return LocalStorage()
    if driver == "r2":
        return R2Storage()
    raise ValueError(f"Unknown STORAGE_DRIVER {driver!r} (expected 'r2' or 'local')")
