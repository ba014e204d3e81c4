"""
Crawl job for the academic bulletin board.

One run pages through the listing, feeds entries to a bounded pool of workers
and, per item, walks fetch -> extract -> classify -> materialize -> persist ->
notify. Item failures are logged and the run moves on; the whole run is capped
by a wall-clock budget and whatever is left is picked up by the next run.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Set

from notice_crawler.clock import Clock, at_time_of_run
from notice_crawler.errors import CrawlerError, FetchError, ParseError
from notice_crawler.extractors.board import parse_detail_page, parse_listing_page
from notice_crawler.extractors.clean import html_to_text
from notice_crawler.extractors.deadline import detect_deadline
from notice_crawler.infra.http import HttpFetcher
from notice_crawler.notify.dispatcher import (
    NotificationDispatcher,
    deep_link_for,
    new_notice_payload,
    updated_notice_payload,
)
from notice_crawler.pipelines.change import ChangeKind, classify, content_digest
from notice_crawler.pipelines.media import MediaMaterializer
from notice_crawler.pipelines.store import NoticeStore
from notice_crawler.schemas.models import (
    BoardLayout,
    DetailContent,
    ListingEntry,
    StoredNotice,
    UpsertResult,
)

logger = logging.getLogger(__name__)

ACADEMIC_TAG = "academic"

DeadlineDetector = Callable[[str, datetime], Optional[datetime]]


class ItemState(str, Enum):
    PAGING = "paging"
    FETCHING_DETAIL = "fetching_detail"
    CLASSIFYING = "classifying"
    MATERIALIZING = "materializing"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ItemOutcome:
    url: str
    external_id: str
    state: ItemState = ItemState.FETCHING_DETAIL
    change: Optional[ChangeKind] = None
    notice_id: Optional[int] = None
    failed_in: Optional[ItemState] = None
    error: Optional[str] = None


@dataclass
class CrawlReport:
    started_at: datetime
    pages_walked: int = 0
    pages_failed: int = 0
    items_queued: int = 0
    outcomes: List[ItemOutcome] = field(default_factory=list)
    timed_out: bool = False
    stopped_reason: Optional[str] = None

    def count(self, state: ItemState) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state is state)

    def count_change(self, change: ChangeKind) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state is ItemState.DONE and outcome.change is change)


class AcademicNoticeIngester:
    def __init__(
        self,
        fetcher: HttpFetcher,
        store: NoticeStore,
        materializer: MediaMaterializer,
        dispatcher: NotificationDispatcher,
        clock: Clock,
        *,
        listing_url: str,
        layout: Optional[BoardLayout] = None,
        max_items: int = 100,
        max_pages: int = 10,
        concurrency: int = 5,
        run_budget_seconds: float = 60.0,
        listing_timeout: float = 10.0,
        detail_timeout: float = 10.0,
        notify_on_change: bool = False,
        deadline_detector: Optional[DeadlineDetector] = detect_deadline,
    ) -> None:
        self.fetcher = fetcher
        self.store = store
        self.materializer = materializer
        self.dispatcher = dispatcher
        self.clock = clock
        self.listing_url = listing_url
        self.layout = layout or BoardLayout()
        self.max_items = max_items
        self.max_pages = max_pages if "{page}" in listing_url else 1
        self.concurrency = max(1, concurrency)
        self.run_budget_seconds = run_budget_seconds
        self.listing_timeout = listing_timeout
        self.detail_timeout = detail_timeout
        self.notify_on_change = notify_on_change
        self.deadline_detector = deadline_detector

    async def run(self) -> CrawlReport:
        report = CrawlReport(started_at=self.clock.now())
        try:
            await asyncio.wait_for(self._crawl(report), timeout=self.run_budget_seconds)
        except asyncio.TimeoutError:
            report.timed_out = True
            report.stopped_reason = report.stopped_reason or "run budget exhausted"
            logger.warning(
                "Crawl run hit its %.0fs budget; %d of %d queued items finished",
                self.run_budget_seconds,
                len(report.outcomes),
                report.items_queued,
            )
        logger.info(
            "Crawl run finished: pages=%d (failed %d) queued=%d new=%d changed=%d skipped=%d failed=%d",
            report.pages_walked,
            report.pages_failed,
            report.items_queued,
            report.count_change(ChangeKind.NEW),
            report.count_change(ChangeKind.CHANGED),
            report.count(ItemState.SKIPPED),
            report.count(ItemState.FAILED),
        )
        return report

    async def _crawl(self, report: CrawlReport) -> None:
        queue: asyncio.Queue = asyncio.Queue()
        workers = [asyncio.create_task(self._worker(queue, report)) for _ in range(self.concurrency)]
        try:
            await self._walk_listing(queue, report)
            await queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    async def _walk_listing(self, queue: asyncio.Queue, report: CrawlReport) -> None:
        seen: Set[str] = set()
        for page in range(1, self.max_pages + 1):
            if report.items_queued >= self.max_items:
                report.stopped_reason = "item limit reached"
                return
            url = self.listing_url.format(page=page)
            try:
                result = await self.fetcher.fetch(url, timeout=self.listing_timeout)
            except FetchError as exc:
                report.stopped_reason = f"listing page {page} unavailable"
                logger.warning("Stopping listing walk at page %d: %s", page, exc)
                return
            report.pages_walked += 1

            try:
                entries = parse_listing_page(result.body, url, self.layout)
            except ParseError as exc:
                report.pages_failed += 1
                logger.warning("Skipping listing page %d, unexpected structure: %s", page, exc)
                continue
            if not entries:
                report.stopped_reason = f"listing page {page} is empty"
                return

            for entry in entries:
                if entry.url in seen:
                    continue
                if report.items_queued >= self.max_items:
                    break
                seen.add(entry.url)
                report.items_queued += 1
                queue.put_nowait(entry)
            logger.debug("Listing page %d queued %d items so far", page, report.items_queued)
        report.stopped_reason = report.stopped_reason or "page limit reached"

    async def _worker(self, queue: asyncio.Queue, report: CrawlReport) -> None:
        while True:
            entry: ListingEntry = await queue.get()
            try:
                report.outcomes.append(await self.process_entry(entry))
            finally:
                queue.task_done()

    async def process_entry(self, entry: ListingEntry) -> ItemOutcome:
        outcome = ItemOutcome(url=entry.url, external_id=entry.external_id)
        try:
            await self._advance(entry, outcome)
        except CrawlerError as exc:
            self._fail(outcome, exc)
            logger.warning("Item %s failed while %s: %s", entry.external_id, outcome.failed_in.value, exc)
        except Exception as exc:  # pragma: no cover - one bad item must not end the run
            self._fail(outcome, exc)
            logger.exception("Unexpected error on item %s while %s", entry.external_id, outcome.failed_in.value)
        return outcome

    @staticmethod
    def _fail(outcome: ItemOutcome, exc: Exception) -> None:
        outcome.failed_in = outcome.state
        outcome.state = ItemState.FAILED
        outcome.error = str(exc)

    async def _advance(self, entry: ListingEntry, outcome: ItemOutcome) -> None:
        outcome.state = ItemState.FETCHING_DETAIL
        page = await self.fetcher.fetch(entry.url, timeout=self.detail_timeout)
        detail = parse_detail_page(page.body, page.url, self.layout)

        outcome.state = ItemState.CLASSIFYING
        body_text = html_to_text(detail.body)
        prior = await self.store.find_notice_by_url(entry.url)
        change = classify(entry.title, body_text, prior)
        outcome.change = change
        if change is ChangeKind.UNCHANGED:
            outcome.state = ItemState.SKIPPED
            outcome.notice_id = prior.id if prior else None
            return
        logger.info(
            "Item %s is %s (digest %s)", entry.external_id, change.value, content_digest(entry.title, body_text)[:12]
        )

        outcome.state = ItemState.MATERIALIZING
        author_id = await self.store.find_or_create_synthetic_user(f"{entry.author} ({entry.category})")
        tags = {ACADEMIC_TAG, entry.category} - {""}
        await self.store.find_or_create_tags(sorted(tags))
        body, image_urls = await self.materializer.materialize(
            detail.body, f"notice-{entry.external_id}", base_url=page.url
        )

        outcome.state = ItemState.PERSISTING
        notice = self._build_notice(entry, detail, body, body_text, image_urls, author_id, tags, prior)
        result = await self.store.upsert_notice(notice)
        notice.id = result.id
        outcome.notice_id = result.id
        if prior is not None:
            await self._drop_stale_images(prior, image_urls)

        outcome.state = ItemState.NOTIFYING
        await self._notify(change, result, notice)
        outcome.state = ItemState.DONE

    def _build_notice(
        self,
        entry: ListingEntry,
        detail: DetailContent,
        body: str,
        body_text: str,
        image_urls: List[str],
        author_id: str,
        tags: Set[str],
        prior: Optional[StoredNotice],
    ) -> StoredNotice:
        if prior is not None:
            created_at = prior.created_at
            deadline = prior.deadline
            author_id = prior.author_id or author_id
        else:
            created_at = at_time_of_run(entry.published_on, self.clock)
            deadline = None
        if deadline is None and self.deadline_detector is not None:
            deadline = self.deadline_detector(body_text, created_at)
        return StoredNotice(
            url=entry.url,
            external_id=entry.external_id,
            title=entry.title,
            body=body,
            body_text=body_text,
            created_at=created_at,
            tags=tags,
            image_urls=image_urls,
            documents=detail.attachments,
            author_id=author_id,
            deadline=deadline,
        )

    async def _drop_stale_images(self, prior: StoredNotice, image_urls: List[str]) -> None:
        stale = [url for url in prior.image_urls if url not in image_urls]
        if not stale:
            return
        try:
            await self.materializer.media_store.delete_images(stale)
        except CrawlerError as exc:
            logger.warning("Could not delete %d stale images of notice %s: %s", len(stale), prior.id, exc)

    async def _notify(self, change: ChangeKind, result: UpsertResult, notice: StoredNotice) -> None:
        if change is ChangeKind.NEW:
            if not result.created:
                logger.info("Notice %s was created by an overlapping run; not broadcasting", result.id)
                return
            tokens = await self.store.all_push_tokens()
            await self.dispatcher.dispatch(new_notice_payload(notice), tokens, deep_link_for(result.id))
        elif self.notify_on_change:
            tokens = await self.store.push_tokens_for_notice_subscribers(result.id)
            await self.dispatcher.dispatch(updated_notice_payload(notice), tokens, deep_link_for(result.id))
