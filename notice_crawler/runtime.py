"""
Wires settings into the collaborators shared by the crawl and reminder jobs.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from notice_crawler.clock import Clock, SystemClock
from notice_crawler.config_loader import load_board_layout
from notice_crawler.infra.http import HttpFetcher
from notice_crawler.ingesters.academic import AcademicNoticeIngester, CrawlReport
from notice_crawler.ingesters.reminders import ReminderSweeper
from notice_crawler.notify.dispatcher import LoggingPushProvider, NotificationDispatcher, PushProvider
from notice_crawler.notify.fcm import FcmPushProvider
from notice_crawler.pipelines.media import MediaMaterializer
from notice_crawler.pipelines.store import SqlNoticeStore
from notice_crawler.schemas.models import BoardLayout
from notice_crawler.settings import CrawlerSettings, load_settings
from notice_crawler.storage.media import LocalMediaStore, MediaStore, S3MediaStore

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: CrawlerSettings
    store: SqlNoticeStore
    media_store: MediaStore
    provider: PushProvider
    dispatcher: NotificationDispatcher
    clock: Clock
    layout: BoardLayout

    async def aclose(self) -> None:
        close = getattr(self.provider, "aclose", None)
        if close is not None:
            await close()


def build_runtime(settings: Optional[CrawlerSettings] = None) -> Runtime:
    settings = settings or load_settings()
    if settings.s3_bucket:
        media_store: MediaStore = S3MediaStore(settings.s3_bucket, settings.s3_region, prefix=settings.media_prefix)
    else:
        logger.info("AWS_S3_BUCKET_NAME not set; storing images under ./media")
        media_store = LocalMediaStore(Path("media"))
    if settings.fcm_project_id and settings.fcm_access_token:
        provider: PushProvider = FcmPushProvider(settings.fcm_project_id, settings.fcm_access_token)
    else:
        logger.info("FCM credentials not set; push notifications are logged only")
        provider = LoggingPushProvider()
    clock = SystemClock(settings.timezone)
    return Runtime(
        settings=settings,
        store=SqlNoticeStore(settings.db_url, timezone_name=settings.timezone, clock=clock),
        media_store=media_store,
        provider=provider,
        dispatcher=NotificationDispatcher(provider),
        clock=clock,
        layout=load_board_layout(settings.board_config_path),
    )


async def run_ingestion(runtime: Runtime) -> CrawlReport:
    settings = runtime.settings
    async with HttpFetcher(
        user_agent=settings.user_agent, min_delay=settings.min_delay, timeout=settings.listing_timeout
    ) as fetcher:
        ingester = AcademicNoticeIngester(
            fetcher,
            runtime.store,
            MediaMaterializer(fetcher, runtime.media_store, timeout=settings.image_timeout),
            runtime.dispatcher,
            runtime.clock,
            listing_url=settings.listing_url,
            layout=runtime.layout,
            max_items=settings.max_items,
            max_pages=settings.max_pages,
            concurrency=settings.concurrency,
            run_budget_seconds=settings.run_budget_seconds,
            listing_timeout=settings.listing_timeout,
            detail_timeout=settings.detail_timeout,
            notify_on_change=settings.notify_on_change,
        )
        return await ingester.run()


async def run_reminders(runtime: Runtime) -> int:
    return await ReminderSweeper(runtime.store, runtime.dispatcher, runtime.clock).sweep()
