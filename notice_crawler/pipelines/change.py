"""
Content-based change detection between a fresh extraction and the stored row.
"""
from __future__ import annotations

import hashlib
from enum import Enum
from typing import Optional, Sequence

from notice_crawler.schemas.models import StoredNotice


class ChangeKind(str, Enum):
    NEW = "new"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


def make_digest(parts: Sequence[str]) -> str:
    joined = "|".join(part or "" for part in parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def content_digest(title: str, body_text: str) -> str:
    return make_digest([title, body_text])


def classify(title: str, body_text: str, prior: Optional[StoredNotice]) -> ChangeKind:
    if prior is None:
        return ChangeKind.NEW
    if prior.title != title or prior.body_text != body_text:
        return ChangeKind.CHANGED
    return ChangeKind.UNCHANGED
