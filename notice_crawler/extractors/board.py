"""
Parsers for the academic bulletin board: listing table rows and detail pages.

Structural surprises raise ParseError so the caller can skip the page and keep
crawling.
"""
from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import List, Optional, Union
from urllib.parse import parse_qs, urljoin, urlsplit

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from notice_crawler.errors import ParseError
from notice_crawler.extractors.clean import normalize_url
from notice_crawler.schemas.models import (
    AttachmentDescriptor,
    AttachmentType,
    BoardLayout,
    DetailContent,
    ListingEntry,
)

logger = logging.getLogger(__name__)

_DATE_PATTERN = re.compile(r"(\d{4})\s*[-./]\s*(\d{1,2})\s*[-./]\s*(\d{1,2})")

Markup = Union[bytes, str]


def _soup(body: Markup) -> BeautifulSoup:
    return BeautifulSoup(body, "lxml")


def parse_listing_page(body: Markup, base_url: str, layout: Optional[BoardLayout] = None) -> List[ListingEntry]:
    layout = layout or BoardLayout()
    table = _soup(body).select_one(layout.listing_table)
    if table is None:
        raise ParseError(f"listing table '{layout.listing_table}' not found")

    needed = max(layout.columns.values()) + 1
    entries: List[ListingEntry] = []
    for row in table.find_all("tr"):
        cells = row.find_all("td", recursive=False)
        if not cells:
            continue
        # A lone cell spanning the table is the board's "no posts" placeholder.
        if len(cells) == 1:
            continue
        if len(cells) < needed:
            raise ParseError(f"listing row has {len(cells)} cells, expected at least {needed}")
        entries.append(_parse_row(cells, base_url, layout))
    return entries


def _parse_row(cells: List[Tag], base_url: str, layout: BoardLayout) -> ListingEntry:
    columns = layout.columns
    title_cell = cells[columns["title"]]
    link = title_cell.find("a", href=True)
    if link is None:
        raise ParseError("listing row has no detail link")

    detail_url = urljoin(base_url, link["href"])
    values = parse_qs(urlsplit(detail_url).query).get(layout.link_id_param)
    if not values or not values[0].strip():
        raise ParseError(f"detail link {detail_url!r} carries no '{layout.link_id_param}' parameter")

    external_id = values[0].strip()
    published = cells[columns["date"]].get_text(" ", strip=True)
    try:
        return ListingEntry(
            external_id=external_id,
            title=link.get_text(" ", strip=True) or title_cell.get_text(" ", strip=True),
            author=cells[columns["author"]].get_text(" ", strip=True),
            category=cells[columns["category"]].get_text(" ", strip=True),
            published=published,
            published_on=_parse_date(published, external_id),
            url=normalize_url(detail_url, layout.identity_params),
        )
    except ValidationError as exc:
        raise ParseError(f"invalid listing row: {exc}") from exc


def parse_detail_page(body: Markup, base_url: str, layout: Optional[BoardLayout] = None) -> DetailContent:
    layout = layout or BoardLayout()
    soup = _soup(body)
    container = soup.select_one(layout.content)
    if container is None:
        raise ParseError(f"content container '{layout.content}' not found")

    attachments: List[AttachmentDescriptor] = []
    files = soup.select_one(layout.attachments)
    if files is not None:
        for anchor in files.find_all("a", href=True):
            name = anchor.get_text(" ", strip=True) or anchor.get("title") or ""
            attachments.append(
                AttachmentDescriptor(
                    name=name,
                    url=urljoin(base_url, anchor["href"]),
                    type=_attachment_type(anchor, layout),
                )
            )

    return DetailContent(body=container.decode_contents().strip(), attachments=attachments)


def _attachment_type(anchor: Tag, layout: BoardLayout) -> AttachmentType:
    classes = list(anchor.get("class") or [])
    for child in anchor.find_all(True):
        classes.extend(child.get("class") or [])
    for css_class in classes:
        token = css_class.lower()
        for key, kind in layout.attachment_classes.items():
            if token == key or token.endswith(f"_{key}") or token.endswith(f"-{key}"):
                return kind
    return AttachmentType.OTHER


def _parse_date(text: str, external_id: str) -> date:
    """The board shows dates like 2024.03.11 or 2024-03-11."""
    match = _DATE_PATTERN.search(text)
    if match is None:
        raise ParseError(f"unrecognised date {text!r} for item {external_id}")
    try:
        return datetime(*(int(part) for part in match.groups())).date()
    except ValueError as exc:
        raise ParseError(f"invalid date {text!r} for item {external_id}") from exc
