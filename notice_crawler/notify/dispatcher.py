"""
Push notification fan-out.

Delivery is best effort: rejected tokens are logged and never retried here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol

from notice_crawler.errors import DispatchPartialFailure
from notice_crawler.extractors.clean import preview
from notice_crawler.schemas.models import NotificationPayload, StoredNotice
from notice_crawler.utils.security import mask_token, redact_secrets

logger = logging.getLogger(__name__)

DEEP_LINK_TEMPLATE = "/root/article?id={notice_id}"


@dataclass
class PushOutcome:
    token: str
    success: bool
    error: Optional[str] = None


class PushProvider(Protocol):
    async def send(
        self, payload: NotificationPayload, tokens: List[str], metadata: Dict[str, str]
    ) -> Dict[str, PushOutcome]:
        ...


@dataclass
class DispatchReport:
    attempted: int = 0
    delivered: int = 0
    failed_tokens: List[str] = field(default_factory=list)


def deep_link_for(notice_id: int) -> str:
    return DEEP_LINK_TEMPLATE.format(notice_id=notice_id)


def new_notice_payload(notice: StoredNotice) -> NotificationPayload:
    return NotificationPayload(
        title="New notice",
        body=notice.title,
        image_url=notice.image_urls[0] if notice.image_urls else None,
        path=deep_link_for(notice.id) if notice.id is not None else None,
    )


def reminder_payload(notice: StoredNotice, days_left: int) -> NotificationPayload:
    unit = "day" if days_left == 1 else "days"
    return NotificationPayload(
        title=f"[Reminder] {days_left} {unit} left on a notice!",
        body=f"{notice.title}: deadline in {days_left} {unit}",
        image_url=notice.image_urls[0] if notice.image_urls else None,
        path=deep_link_for(notice.id) if notice.id is not None else None,
    )


def updated_notice_payload(notice: StoredNotice) -> NotificationPayload:
    summary = preview(notice.body)
    return NotificationPayload(
        title="Notice updated",
        body=f"{notice.title}: {summary}" if summary else notice.title,
        image_url=notice.image_urls[0] if notice.image_urls else None,
        path=deep_link_for(notice.id) if notice.id is not None else None,
    )


class NotificationDispatcher:
    def __init__(self, provider: PushProvider) -> None:
        self.provider = provider

    async def dispatch(
        self, payload: NotificationPayload, tokens: Iterable[str], deep_link: Optional[str] = None
    ) -> DispatchReport:
        unique = list(dict.fromkeys(token for token in tokens if token))
        report = DispatchReport(attempted=len(unique))
        if not unique:
            logger.debug("No push tokens for '%s'; skipping dispatch", payload.title)
            return report

        metadata = {"path": deep_link or payload.path or ""}
        try:
            outcomes = await self.provider.send(payload, unique, metadata)
        except DispatchPartialFailure as exc:
            logger.warning("Push dispatch '%s': %s", payload.title, exc)
            outcomes = exc.outcomes  # type: ignore[assignment]
        except Exception as exc:  # pragma: no cover - provider outage must not stop the crawl
            logger.error("Push dispatch '%s' failed entirely: %s", payload.title, redact_secrets(str(exc)))
            report.failed_tokens = unique
            return report

        for token in unique:
            outcome = outcomes.get(token)
            if outcome is not None and outcome.success:
                report.delivered += 1
            else:
                report.failed_tokens.append(token)
                logger.info(
                    "Push to %s rejected: %s",
                    mask_token(token),
                    redact_secrets(outcome.error or "") if outcome else "no outcome",
                )
        logger.info("Dispatched '%s' to %d/%d tokens", payload.title, report.delivered, report.attempted)
        return report


class LoggingPushProvider:
    """Dry-run provider: logs every message and reports it as delivered."""

    async def send(
        self, payload: NotificationPayload, tokens: List[str], metadata: Dict[str, str]
    ) -> Dict[str, PushOutcome]:
        logger.info("[dry-run] push '%s' / '%s' to %d tokens (%s)", payload.title, payload.body, len(tokens), metadata)
        return {token: PushOutcome(token=token, success=True) for token in tokens}
