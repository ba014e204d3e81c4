"""
SQLAlchemy storage for crawled notices, keyed by the detail-page URL.

Every public method is a coroutine; the blocking engine work runs on a worker
thread so the crawl loop keeps other fetches in flight.
"""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import date, datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    select,
    update,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from notice_crawler.clock import DEFAULT_TIMEZONE, Clock, SystemClock, start_of_day
from notice_crawler.errors import PersistenceError
from notice_crawler.schemas.models import AttachmentDescriptor, StoredNotice, UpsertResult

logger = logging.getLogger(__name__)

metadata = MetaData()

users_table = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String, unique=True, nullable=False),
    Column("synthetic", Boolean, nullable=False, default=False),
    Column("created_at", DateTime),
)

tags_table = Table(
    "tags",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String, unique=True, nullable=False),
)

notices_table = Table(
    "notices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("url", String, unique=True, nullable=False),
    Column("external_id", String, index=True),
    Column("title", String, nullable=False),
    Column("body", Text, nullable=False),
    Column("body_text", Text, nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime),
    Column("deadline", DateTime, nullable=True, index=True),
    Column("author_id", String(36), ForeignKey("users.id"), nullable=True),
    Column("image_urls", Text, nullable=False, default="[]"),
    Column("documents", Text, nullable=False, default="[]"),
)

notice_tags_table = Table(
    "notice_tags",
    metadata,
    Column("notice_id", Integer, ForeignKey("notices.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)

push_tokens_table = Table(
    "push_tokens",
    metadata,
    Column("token", String, primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id"), nullable=False, index=True),
)

reminders_table = Table(
    "reminders",
    metadata,
    Column("notice_id", Integer, ForeignKey("notices.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id"), primary_key=True),
)


class NoticeStore(Protocol):
    async def find_notice_by_url(self, url: str) -> Optional[StoredNotice]:
        ...

    async def upsert_notice(self, notice: StoredNotice) -> UpsertResult:
        ...

    async def find_notices_with_deadline_on(self, day: date) -> List[StoredNotice]:
        ...

    async def find_or_create_tags(self, names: Sequence[str]) -> List[int]:
        ...

    async def find_or_create_synthetic_user(self, label: str) -> str:
        ...

    async def all_push_tokens(self) -> List[str]:
        ...

    async def push_tokens_for_notice_subscribers(self, notice_id: int) -> List[str]:
        ...


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


class SqlNoticeStore:
    def __init__(
        self,
        db_url: str = "sqlite:///notice_crawler.db",
        timezone_name: str = DEFAULT_TIMEZONE,
        clock: Optional[Clock] = None,
    ) -> None:
        if db_url.startswith("sqlite:///") and ":memory:" not in db_url:
            Path(db_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        self.engine: Engine = create_engine(db_url, future=True)
        self.tz: tzinfo = ZoneInfo(timezone_name)
        self.clock: Clock = clock or SystemClock(timezone_name)
        metadata.create_all(self.engine)
        self._insert = pg_insert if self.engine.dialect.name == "postgresql" else sqlite_insert

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as exc:
            logger.error("Database error in %s: %s", fn.__name__, exc)
            raise PersistenceError(f"{fn.__name__} failed: {exc}") from exc

    # Notices

    async def find_notice_by_url(self, url: str) -> Optional[StoredNotice]:
        return await self._run(self._find_notice_by_url, url)

    def _find_notice_by_url(self, url: str) -> Optional[StoredNotice]:
        with self.engine.connect() as conn:
            row = conn.execute(select(notices_table).where(notices_table.c.url == url)).mappings().first()
            if row is None:
                return None
            return self._to_notice(conn, row)

    async def upsert_notice(self, notice: StoredNotice) -> UpsertResult:
        return await self._run(self._upsert_notice, notice)

    def _upsert_notice(self, notice: StoredNotice) -> UpsertResult:
        now = _to_db(self.clock.now())
        values = {
            "url": notice.url,
            "external_id": notice.external_id,
            "title": notice.title,
            "body": notice.body,
            "body_text": notice.body_text,
            "created_at": _to_db(notice.created_at),
            "updated_at": now,
            "deadline": _to_db(notice.deadline),
            "author_id": notice.author_id,
            "image_urls": json.dumps(list(notice.image_urls), ensure_ascii=False),
            "documents": json.dumps([doc.model_dump(mode="json") for doc in notice.documents], ensure_ascii=False),
        }
        with self.engine.begin() as conn:
            stmt = self._insert(notices_table).values(**values).on_conflict_do_nothing(index_elements=["url"])
            created = conn.execute(stmt).rowcount == 1
            if not created:
                changes = {key: value for key, value in values.items() if key != "url"}
                conn.execute(update(notices_table).where(notices_table.c.url == notice.url).values(**changes))
            notice_id = conn.execute(select(notices_table.c.id).where(notices_table.c.url == notice.url)).scalar_one()

            tag_ids = self._ensure_tags(conn, sorted(notice.tags))
            conn.execute(delete(notice_tags_table).where(notice_tags_table.c.notice_id == notice_id))
            if tag_ids:
                conn.execute(
                    notice_tags_table.insert(),
                    [{"notice_id": notice_id, "tag_id": tag_id} for tag_id in tag_ids],
                )
        logger.info("%s notice %s (%s)", "Created" if created else "Updated", notice_id, notice.url)
        return UpsertResult(id=notice_id, created=created)

    async def find_notices_with_deadline_on(self, day: date) -> List[StoredNotice]:
        return await self._run(self._find_notices_with_deadline_on, day)

    def _find_notices_with_deadline_on(self, day: date) -> List[StoredNotice]:
        start = start_of_day(day, self.tz)
        end = start + timedelta(days=1)
        query = select(notices_table).where(
            notices_table.c.deadline >= _to_db(start),
            notices_table.c.deadline < _to_db(end),
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(notices_table.c.id)).mappings().all()
            return [self._to_notice(conn, row) for row in rows]

    def _to_notice(self, conn: Connection, row) -> StoredNotice:
        tags = conn.execute(
            select(tags_table.c.name)
            .join(notice_tags_table, notice_tags_table.c.tag_id == tags_table.c.id)
            .where(notice_tags_table.c.notice_id == row["id"])
        ).scalars().all()
        return StoredNotice(
            id=row["id"],
            url=row["url"],
            external_id=row["external_id"],
            title=row["title"],
            body=row["body"],
            body_text=row["body_text"],
            created_at=_from_db(row["created_at"]),
            deadline=_from_db(row["deadline"]),
            author_id=row["author_id"],
            tags=set(tags),
            image_urls=json.loads(row["image_urls"] or "[]"),
            documents=[AttachmentDescriptor.model_validate(doc) for doc in json.loads(row["documents"] or "[]")],
        )

    # Tags and users

    async def find_or_create_tags(self, names: Sequence[str]) -> List[int]:
        return await self._run(self._find_or_create_tags, list(names))

    def _find_or_create_tags(self, names: List[str]) -> List[int]:
        with self.engine.begin() as conn:
            return self._ensure_tags(conn, names)

    def _ensure_tags(self, conn: Connection, names: List[str]) -> List[int]:
        unique = list(dict.fromkeys(name for name in names if name))
        if not unique:
            return []
        for name in unique:
            conn.execute(self._insert(tags_table).values(name=name).on_conflict_do_nothing(index_elements=["name"]))
        rows = conn.execute(select(tags_table.c.name, tags_table.c.id).where(tags_table.c.name.in_(unique))).all()
        ids: Dict[str, int] = {name: tag_id for name, tag_id in rows}
        return [ids[name] for name in unique]

    async def find_or_create_synthetic_user(self, label: str) -> str:
        return await self._run(self._find_or_create_user, label, True)

    async def create_user(self, name: str) -> str:
        return await self._run(self._find_or_create_user, name, False)

    def _find_or_create_user(self, name: str, synthetic: bool) -> str:
        with self.engine.begin() as conn:
            conn.execute(
                self._insert(users_table)
                .values(id=str(uuid.uuid4()), name=name, synthetic=synthetic, created_at=_to_db(self.clock.now()))
                .on_conflict_do_nothing(index_elements=["name"])
            )
            return conn.execute(select(users_table.c.id).where(users_table.c.name == name)).scalar_one()

    # Subscribers

    async def register_push_token(self, user_id: str, token: str) -> None:
        await self._run(self._register_push_token, user_id, token)

    def _register_push_token(self, user_id: str, token: str) -> None:
        with self.engine.begin() as conn:
            stmt = self._insert(push_tokens_table).values(token=token, user_id=user_id)
            conn.execute(stmt.on_conflict_do_update(index_elements=["token"], set_={"user_id": stmt.excluded.user_id}))

    async def add_reminder(self, notice_id: int, user_id: str) -> None:
        await self._run(self._add_reminder, notice_id, user_id)

    def _add_reminder(self, notice_id: int, user_id: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                self._insert(reminders_table)
                .values(notice_id=notice_id, user_id=user_id)
                .on_conflict_do_nothing(index_elements=["notice_id", "user_id"])
            )

    async def all_push_tokens(self) -> List[str]:
        return await self._run(self._all_push_tokens)

    def _all_push_tokens(self) -> List[str]:
        with self.engine.connect() as conn:
            return list(conn.execute(select(push_tokens_table.c.token).order_by(push_tokens_table.c.token)).scalars())

    async def push_tokens_for_notice_subscribers(self, notice_id: int) -> List[str]:
        return await self._run(self._push_tokens_for_notice_subscribers, notice_id)

    def _push_tokens_for_notice_subscribers(self, notice_id: int) -> List[str]:
        query = (
            select(push_tokens_table.c.token)
            .join(reminders_table, reminders_table.c.user_id == push_tokens_table.c.user_id)
            .where(reminders_table.c.notice_id == notice_id)
            .order_by(push_tokens_table.c.token)
        )
        with self.engine.connect() as conn:
            return list(conn.execute(query).scalars())
