"""
Centralised settings for the notice crawler (env-first, code-light).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from notice_crawler.clock import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

DEFAULT_LISTING_URL = "https://www.gist.ac.kr/kr/html/sub05/050209.html?GotoPage={page}"


@dataclass
class CrawlerSettings:
    listing_url: str
    db_url: str
    timezone: str
    user_agent: str
    max_items: int
    max_pages: int
    concurrency: int
    run_budget_seconds: float
    listing_timeout: float
    detail_timeout: float
    image_timeout: float
    min_delay: float
    notify_on_change: bool
    board_config_path: Optional[Path]
    ingest_cron: str
    reminder_cron: str
    s3_bucket: str
    s3_region: str
    media_prefix: str
    fcm_project_id: str
    fcm_access_token: str


def _int_from_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except ValueError:
        logger.warning("Invalid int value for %s=%s; using default %s", key, raw, default)
        return default


def _float_from_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = float(raw)
        return value if value >= 0 else default
    except ValueError:
        logger.warning("Invalid float value for %s=%s; using default %s", key, raw, default)
        return default


def _bool_from_env(key: str, default: bool = False) -> bool:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> CrawlerSettings:
    board_config = os.getenv("NOTICE_BOARD_CONFIG")
    return CrawlerSettings(
        listing_url=os.getenv("NOTICE_LISTING_URL", DEFAULT_LISTING_URL),
        db_url=os.getenv("NOTICE_DB_URL", "sqlite:///notice_crawler.db"),
        timezone=os.getenv("NOTICE_TIMEZONE", DEFAULT_TIMEZONE),
        user_agent=os.getenv("NOTICE_USER_AGENT", "NoticeCrawler/1.0"),
        max_items=_int_from_env("NOTICE_MAX_ITEMS", 100),
        max_pages=_int_from_env("NOTICE_MAX_PAGES", 10),
        concurrency=_int_from_env("NOTICE_CONCURRENCY", 5),
        run_budget_seconds=_float_from_env("NOTICE_RUN_BUDGET", 60.0),
        listing_timeout=_float_from_env("NOTICE_LISTING_TIMEOUT", 10.0),
        detail_timeout=_float_from_env("NOTICE_DETAIL_TIMEOUT", 10.0),
        image_timeout=_float_from_env("NOTICE_IMAGE_TIMEOUT", 20.0),
        min_delay=_float_from_env("NOTICE_MIN_DELAY", 0.2),
        notify_on_change=_bool_from_env("NOTICE_NOTIFY_ON_CHANGE"),
        board_config_path=Path(board_config) if board_config else None,
        ingest_cron=os.getenv("NOTICE_INGEST_CRON", "*/5 * * * *"),
        reminder_cron=os.getenv("NOTICE_REMINDER_CRON", "0 9 * * *"),
        s3_bucket=os.getenv("AWS_S3_BUCKET_NAME", ""),
        s3_region=os.getenv("AWS_S3_REGION", "ap-northeast-2"),
        media_prefix=os.getenv("NOTICE_MEDIA_PREFIX", "notices/"),
        fcm_project_id=os.getenv("FCM_PROJECT_ID", ""),
        fcm_access_token=os.getenv("FCM_ACCESS_TOKEN", ""),
    )
