"""
Materializes images embedded in notice bodies into the media store.

Each image is fetched independently; one broken image is dropped and logged
while the rest of the batch is stored.
"""
from __future__ import annotations

import asyncio
import logging
import mimetypes
import re
from typing import List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from notice_crawler.errors import FetchError, MediaUploadError
from notice_crawler.infra.http import HttpFetcher
from notice_crawler.schemas.models import MediaObject
from notice_crawler.storage.media import MediaStore

logger = logging.getLogger(__name__)

_LABEL_UNSAFE = re.compile(r"[^\w-]+")
_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "image/svg+xml": ".svg",
}


def sanitize_label(label: str) -> str:
    cleaned = _LABEL_UNSAFE.sub("-", (label or "").strip()).strip("-")
    return cleaned[:60] or "image"


def extension_for(content_type: str) -> str:
    mime = (content_type or "").split(";")[0].strip().lower()
    return _EXTENSIONS.get(mime) or mimetypes.guess_extension(mime) or ".bin"


def object_name(counter: int, label: str, content_type: str) -> str:
    return f"{counter}_{sanitize_label(label)}{extension_for(content_type)}"


class MediaMaterializer:
    def __init__(self, fetcher: HttpFetcher, media_store: MediaStore, timeout: float = 20.0) -> None:
        self.fetcher = fetcher
        self.media_store = media_store
        self.timeout = timeout

    async def materialize(self, html: str, context_label: str, base_url: str = "") -> Tuple[str, List[str]]:
        soup = BeautifulSoup(html or "", "html.parser")
        images = [img for img in soup.find_all("img") if self._source(img, base_url)]
        if not images:
            return html, []

        fetched = await asyncio.gather(
            *(self._fetch_one(counter, img, context_label, base_url) for counter, img in enumerate(images, start=1))
        )
        kept = [(img, obj) for img, obj in zip(images, fetched) if obj is not None]
        if not kept:
            return html, []

        urls = await self.media_store.store_images([obj for _, obj in kept])
        if len(urls) != len(kept):
            raise MediaUploadError(f"media store returned {len(urls)} urls for {len(kept)} images")
        for (img, _), url in zip(kept, urls):
            img["src"] = url
        return str(soup), list(urls)

    async def _fetch_one(self, counter: int, img: Tag, label: str, base_url: str) -> Optional[MediaObject]:
        source = self._source(img, base_url)
        try:
            result = await self.fetcher.fetch(source, timeout=self.timeout)
        except FetchError as exc:
            logger.warning("Dropping image %s for %s: %s", source, label, exc)
            return None
        return MediaObject(
            data=result.body,
            name=object_name(counter, label, result.content_type),
            content_type=result.content_type.split(";")[0].strip(),
        )

    @staticmethod
    def _source(img: Tag, base_url: str) -> Optional[str]:
        src = (img.get("src") or "").strip()
        if not src or src.startswith("data:"):
            return None
        return urljoin(base_url, src)
