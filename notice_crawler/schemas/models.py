"""
Pydantic models for crawler records.

Listing/detail records are ephemeral and live for one crawl pass; StoredNotice
mirrors the durable row keyed by the detail-page URL.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, field_validator


class AttachmentType(str, Enum):
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    DOC_VARIANT = "presentation-or-doc-variant"
    IMAGE_BUNDLE = "image-bundle"
    OTHER = "other"


class BoardLayout(BaseModel):
    """Where the extractor looks for things on the bulletin board."""

    listing_table: str = "table.board_list"
    columns: Dict[str, int] = {"category": 1, "title": 2, "author": 3, "date": 5}
    link_id_param: str = "no"
    identity_params: List[str] = ["mode", "no"]
    attachments: str = "div.bd_detail_file"
    content: str = "div.bd_detail_content"
    attachment_classes: Dict[str, AttachmentType] = {
        "hwp": AttachmentType.DOCUMENT,
        "pdf": AttachmentType.DOCUMENT,
        "txt": AttachmentType.DOCUMENT,
        "xls": AttachmentType.SPREADSHEET,
        "xlsx": AttachmentType.SPREADSHEET,
        "csv": AttachmentType.SPREADSHEET,
        "doc": AttachmentType.DOC_VARIANT,
        "docx": AttachmentType.DOC_VARIANT,
        "ppt": AttachmentType.DOC_VARIANT,
        "pptx": AttachmentType.DOC_VARIANT,
        "zip": AttachmentType.IMAGE_BUNDLE,
        "img": AttachmentType.IMAGE_BUNDLE,
    }

    @field_validator("columns")
    @classmethod
    def _require_columns(cls, value: Dict[str, int]) -> Dict[str, int]:
        missing = {"category", "title", "author", "date"} - set(value)
        if missing:
            raise ValueError(f"column map is missing {sorted(missing)}")
        return value


class AttachmentDescriptor(BaseModel):
    name: str
    url: str
    type: AttachmentType = AttachmentType.OTHER

    @field_validator("name", mode="before")
    @classmethod
    def _trim_name(cls, value: str) -> str:
        return (value or "").strip()


class ListingEntry(BaseModel):
    external_id: str
    title: str
    author: str
    category: str
    published: str
    published_on: date
    url: str

    @field_validator("title", "author", "category", "published", mode="before")
    @classmethod
    def _collapse_whitespace(cls, value: str) -> str:
        return " ".join((value or "").split())

    @field_validator("external_id", "title", "url")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be blank")
        return value


class DetailContent(BaseModel):
    body: str
    attachments: List[AttachmentDescriptor] = []


class StoredNotice(BaseModel):
    id: Optional[int] = None
    url: str
    external_id: str
    title: str
    body: str
    body_text: str
    created_at: datetime
    tags: Set[str] = set()
    image_urls: List[str] = []
    documents: List[AttachmentDescriptor] = []
    author_id: Optional[str] = None
    deadline: Optional[datetime] = None

    @property
    def document_urls(self) -> List[str]:
        return [doc.url for doc in self.documents]


class NotificationPayload(BaseModel):
    title: str
    body: str
    image_url: Optional[str] = None
    path: Optional[str] = None


class MediaObject(BaseModel):
    data: bytes
    name: str
    content_type: str


@dataclass
class UpsertResult:
    id: int
    created: bool
