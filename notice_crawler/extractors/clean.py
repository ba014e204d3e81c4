"""
Text and URL normalization shared by the extractor and the change detector.
"""
from __future__ import annotations

from typing import Iterable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from bs4 import BeautifulSoup


def normalize_url(url: str, keep_params: Iterable[str]) -> str:
    """Drop every query parameter that does not identify the item (paging, search state)."""
    parts = urlsplit(url)
    keep = list(keep_params)
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key in keep]
    query.sort(key=lambda pair: keep.index(pair[0]))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), ""))


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html or "", "lxml")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return " ".join(soup.get_text(" ").split())


def clip(text: str, n: int = 800) -> str:
    return (text or "")[:n]


def preview(html: str, n: int = 100) -> str:
    return clip(html_to_text(html), n)
