import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

from notice_crawler.clock import FixedClock
from notice_crawler.ingesters.reminders import ReminderSweeper
from notice_crawler.notify.dispatcher import NotificationDispatcher
from notice_crawler.pipelines.store import SqlNoticeStore
from notice_crawler.schemas.models import StoredNotice
from notice_crawler.tests.fakes import RecordingPushProvider, detail_url

KST = ZoneInfo("Asia/Seoul")


class ReminderSweeperTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.clock = FixedClock(datetime(2024, 3, 11, 9, 0))
        self.store = SqlNoticeStore(f"sqlite:///{Path(self.tmpdir.name) / 'notices.db'}", clock=self.clock)
        self.provider = RecordingPushProvider()
        self.sweeper = ReminderSweeper(self.store, NotificationDispatcher(self.provider), self.clock)
        self.alice = await self.store.create_user("alice")
        self.bob = await self.store.create_user("bob")
        await self.store.register_push_token(self.alice, "tok-alice")
        await self.store.register_push_token(self.bob, "tok-bob")

    async def asyncTearDown(self):
        self.store.engine.dispose()
        self.tmpdir.cleanup()

    async def _notice(self, no: str, deadline) -> int:
        result = await self.store.upsert_notice(
            StoredNotice(
                url=detail_url(no),
                external_id=no,
                title=f"Scholarship {no}",
                body="<p>apply</p>",
                body_text="apply",
                created_at=datetime(2024, 3, 1, 10, 0, tzinfo=KST),
                deadline=deadline,
            )
        )
        return result.id

    async def test_notice_due_tomorrow_reminds_its_subscribers(self):
        due = await self._notice("1", datetime(2024, 3, 12, 23, 59, 59, tzinfo=KST))
        await self.store.add_reminder(due, self.alice)

        sent = await self.sweeper.sweep()

        self.assertEqual(sent, 1)
        self.assertEqual(len(self.provider.calls), 1)
        payload, tokens, metadata = self.provider.calls[0]
        self.assertEqual(tokens, ["tok-alice"])
        self.assertEqual(payload.title, "[Reminder] 1 day left on a notice!")
        self.assertEqual(payload.body, "Scholarship 1: deadline in 1 day")
        self.assertEqual(metadata["path"], f"/root/article?id={due}")

    async def test_today_is_taken_in_the_source_timezone(self):
        # 15:30 UTC on March 11 is already March 12 in Seoul
        clock = FixedClock(datetime(2024, 3, 11, 15, 30, tzinfo=timezone.utc))
        sweeper = ReminderSweeper(self.store, NotificationDispatcher(self.provider), clock)
        due = await self._notice("8", datetime(2024, 3, 13, 18, 0, tzinfo=KST))
        await self.store.add_reminder(due, self.alice)

        self.assertEqual(await sweeper.sweep(), 1)
        self.assertEqual(self.provider.calls[0][1], ["tok-alice"])

    async def test_other_days_are_ignored(self):
        later = await self._notice("2", datetime(2024, 3, 13, 12, 0, tzinfo=KST))
        today = await self._notice("3", datetime(2024, 3, 11, 18, 0, tzinfo=KST))
        await self._notice("4", None)
        await self.store.add_reminder(later, self.alice)
        await self.store.add_reminder(today, self.bob)

        sent = await self.sweeper.sweep()

        self.assertEqual(sent, 0)
        self.assertEqual(self.provider.calls, [])

    async def test_notice_without_subscribers_sends_nothing(self):
        await self._notice("5", datetime(2024, 3, 12, 10, 0, tzinfo=KST))

        await self.sweeper.sweep()

        self.assertEqual(self.provider.calls, [])

    async def test_each_notice_is_reminded_separately(self):
        first = await self._notice("6", datetime(2024, 3, 12, 9, 0, tzinfo=KST))
        second = await self._notice("7", datetime(2024, 3, 12, 17, 0, tzinfo=KST))
        await self.store.add_reminder(first, self.alice)
        await self.store.add_reminder(second, self.alice)
        await self.store.add_reminder(second, self.bob)

        sent = await self.sweeper.sweep()

        self.assertEqual(sent, 2)
        tokens_by_title = {payload.body.split(":")[0]: tokens for payload, tokens, _ in self.provider.calls}
        self.assertEqual(tokens_by_title, {"Scholarship 6": ["tok-alice"], "Scholarship 7": ["tok-alice", "tok-bob"]})


if __name__ == "__main__":
    unittest.main()
