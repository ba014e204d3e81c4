"""
Test doubles and HTML builders shared by the test modules.
"""
from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import httpx

from notice_crawler.errors import DispatchPartialFailure, MediaUploadError
from notice_crawler.notify.dispatcher import PushOutcome
from notice_crawler.schemas.models import MediaObject, NotificationPayload

LISTING_URL = "https://board.test/notices?GotoPage={page}"

Route = Union[Tuple[int, bytes, str], Callable[[httpx.Request], object], Exception]


def listing_html(rows: Sequence[Dict[str, str]]) -> bytes:
    cells = []
    for row in rows:
        cells.append(
            "<tr>"
            f"<td>{row.get('num', '1')}</td>"
            f"<td>{row.get('category', 'Academic')}</td>"
            f"<td class=\"title\"><a href=\"?mode=V&amp;no={row['no']}&amp;GotoPage=1\">{row['title']}</a></td>"
            f"<td>{row.get('author', 'Registrar')}</td>"
            "<td></td>"
            f"<td>{row.get('date', '2024-03-11')}</td>"
            "<td>12</td>"
            "</tr>"
        )
    return (
        "<html><body><table class=\"board_list\"><thead><tr><th>No</th><th>Category</th><th>Title</th>"
        "<th>Author</th><th>File</th><th>Date</th><th>Views</th></tr></thead>"
        f"<tbody>{''.join(cells)}</tbody></table></body></html>"
    ).encode("utf-8")


def detail_html(body: str, attachments: Sequence[Tuple[str, str, str]] = ()) -> bytes:
    files = "".join(f'<li><a class="{css}" href="{href}">{name}</a></li>' for name, href, css in attachments)
    return (
        "<html><body><div class=\"bd_detail\">"
        f"<div class=\"bd_detail_file\"><ul>{files}</ul></div>"
        f"<div class=\"bd_detail_content\">{body}</div>"
        "</div></body></html>"
    ).encode("utf-8")


def detail_url(no: str) -> str:
    return f"https://board.test/notices?mode=V&no={no}"


class Site:
    """Routes requests of an httpx.MockTransport; tracks hits per URL."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None) -> None:
        self.routes: Dict[str, Route] = {}
        self.hits: Dict[str, int] = {}
        for url, route in (routes or {}).items():
            self.set(url, route)

    def set(self, url: str, route: Route) -> None:
        self.routes[str(httpx.URL(url))] = route

    def html(self, url: str, body: bytes) -> None:
        self.set(url, (200, body, "text/html; charset=utf-8"))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        key = str(request.url)
        self.hits[key] = self.hits.get(key, 0) + 1
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, content=b"not found")
        if isinstance(route, Exception):
            raise route
        if callable(route):
            result = route(request)
            if asyncio.iscoroutine(result):
                result = await result
            return result  # type: ignore[return-value]
        status, content, content_type = route
        return httpx.Response(status, content=content, headers={"Content-Type": content_type})


class MemoryMediaStore:
    def __init__(self, fail: bool = False, fail_delete: bool = False) -> None:
        self.fail = fail
        self.fail_delete = fail_delete
        self.stored: List[MediaObject] = []
        self.deleted: List[str] = []

    async def store_images(self, objects: Sequence[MediaObject]) -> List[str]:
        if self.fail:
            raise MediaUploadError("bucket unavailable")
        self.stored.extend(objects)
        return [f"https://media.test/{obj.name}" for obj in objects]

    async def delete_images(self, urls: Sequence[str]) -> None:
        if self.fail_delete:
            raise MediaUploadError("bucket unavailable")
        self.deleted.extend(urls)


class RecordingPushProvider:
    def __init__(self, reject: Sequence[str] = ()) -> None:
        self.reject = set(reject)
        self.calls: List[Tuple[NotificationPayload, List[str], Dict[str, str]]] = []

    async def send(
        self, payload: NotificationPayload, tokens: List[str], metadata: Dict[str, str]
    ) -> Dict[str, PushOutcome]:
        self.calls.append((payload, list(tokens), dict(metadata)))
        outcomes = {
            token: PushOutcome(token=token, success=token not in self.reject, error="UNREGISTERED" if token in self.reject else None)
            for token in tokens
        }
        failed = sum(1 for outcome in outcomes.values() if not outcome.success)
        if failed:
            raise DispatchPartialFailure(outcomes, failed)  # type: ignore[arg-type]
        return outcomes
