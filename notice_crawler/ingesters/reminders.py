"""
Daily sweep reminding subscribers of notices whose deadline is tomorrow.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta

from notice_crawler.clock import Clock, today
from notice_crawler.errors import CrawlerError
from notice_crawler.notify.dispatcher import NotificationDispatcher, deep_link_for, reminder_payload
from notice_crawler.pipelines.store import NoticeStore
from notice_crawler.schemas.models import StoredNotice

logger = logging.getLogger(__name__)


class ReminderSweeper:
    def __init__(self, store: NoticeStore, dispatcher: NotificationDispatcher, clock: Clock, days_ahead: int = 1) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock
        self.days_ahead = days_ahead

    async def sweep(self) -> int:
        """Dispatch one reminder per notice due ``days_ahead`` days from today; returns how many were sent."""
        current = today(self.clock)
        target = current + timedelta(days=self.days_ahead)
        try:
            notices = await self.store.find_notices_with_deadline_on(target)
        except CrawlerError as exc:
            logger.error("Reminder sweep could not load notices due %s: %s", target, exc)
            return 0
        results = await asyncio.gather(*(self._remind(notice, current) for notice in notices))
        sent = sum(1 for ok in results if ok)
        logger.info("Reminder sweep for %s: %d/%d notices dispatched", target, sent, len(notices))
        return sent

    async def _remind(self, notice: StoredNotice, current: date) -> bool:
        try:
            days_left = (notice.deadline.astimezone(self.clock.tz).date() - current).days
            tokens = await self.store.push_tokens_for_notice_subscribers(notice.id)
            await self.dispatcher.dispatch(reminder_payload(notice, days_left), tokens, deep_link_for(notice.id))
        except CrawlerError as exc:
            logger.warning("Reminder for notice %s failed: %s", notice.id, exc)
            return False
        return True
