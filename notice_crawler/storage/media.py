"""
Media store contract with S3 and local-directory implementations.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Protocol, Sequence
from urllib.parse import quote, unquote, urlsplit

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from notice_crawler.errors import MediaUploadError
from notice_crawler.schemas.models import MediaObject

logger = logging.getLogger(__name__)


class MediaStore(Protocol):
    async def store_images(self, objects: Sequence[MediaObject]) -> List[str]:
        ...

    async def delete_images(self, urls: Sequence[str]) -> None:
        ...


class S3MediaStore:
    def __init__(self, bucket: str, region: str, prefix: str = "", client=None) -> None:
        if not bucket:
            raise ValueError("S3MediaStore requires a bucket name")
        self.bucket = bucket
        self.region = region
        self.prefix = prefix
        self.client = client or boto3.client("s3", region_name=region)
        self.base_url = f"https://s3.{region}.amazonaws.com/{bucket}/"

    def url_for(self, key: str) -> str:
        return f"{self.base_url}{quote(key)}"

    def key_for(self, url: str) -> Optional[str]:
        if not url.startswith(self.base_url):
            return None
        return unquote(urlsplit(url).path.split(f"/{self.bucket}/", 1)[1])

    async def store_images(self, objects: Sequence[MediaObject]) -> List[str]:
        return await asyncio.to_thread(self._put_all, list(objects))

    def _put_all(self, objects: List[MediaObject]) -> List[str]:
        urls: List[str] = []
        for obj in objects:
            key = f"{self.prefix}{obj.name}"
            try:
                self.client.put_object(Bucket=self.bucket, Key=key, Body=obj.data, ContentType=obj.content_type)
            except (BotoCoreError, ClientError) as exc:
                raise MediaUploadError(f"upload of {key} failed: {exc}") from exc
            urls.append(self.url_for(key))
        logger.info("Uploaded %d images to s3://%s/%s", len(urls), self.bucket, self.prefix)
        return urls

    async def delete_images(self, urls: Sequence[str]) -> None:
        keys = [key for key in (self.key_for(url) for url in urls) if key]
        if not keys:
            return
        await asyncio.to_thread(self._delete_all, keys)

    def _delete_all(self, keys: List[str]) -> None:
        try:
            self.client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
            )
        except (BotoCoreError, ClientError) as exc:
            raise MediaUploadError(f"delete of {len(keys)} objects failed: {exc}") from exc


class LocalMediaStore:
    """Writes images under a directory; used for local runs without S3 credentials."""

    def __init__(self, root: Path, base_url: str = "") -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/") or self.root.resolve().as_uri()

    async def store_images(self, objects: Sequence[MediaObject]) -> List[str]:
        return await asyncio.to_thread(self._write_all, list(objects))

    def _write_all(self, objects: List[MediaObject]) -> List[str]:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            for obj in objects:
                (self.root / obj.name).write_bytes(obj.data)
        except OSError as exc:
            raise MediaUploadError(f"writing images under {self.root} failed: {exc}") from exc
        return [f"{self.base_url}/{quote(obj.name)}" for obj in objects]

    async def delete_images(self, urls: Sequence[str]) -> None:
        await asyncio.to_thread(self._unlink_all, list(urls))

    def _unlink_all(self, urls: List[str]) -> None:
        prefix = f"{self.base_url}/"
        try:
            for url in urls:
                if url.startswith(prefix):
                    (self.root / unquote(url[len(prefix):])).unlink(missing_ok=True)
        except OSError as exc:
            raise MediaUploadError(f"deleting images under {self.root} failed: {exc}") from exc
