"""
Firebase Cloud Messaging (HTTP v1) push provider.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

import httpx

from notice_crawler.errors import DispatchPartialFailure
from notice_crawler.notify.dispatcher import PushOutcome
from notice_crawler.schemas.models import NotificationPayload

logger = logging.getLogger(__name__)

FCM_ENDPOINT = "https://fcm.googleapis.com/v1/projects/{project}/messages:send"


class FcmPushProvider:
    def __init__(
        self,
        project_id: str,
        access_token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not project_id or not access_token:
            raise ValueError("FcmPushProvider requires a project id and an access token")
        self.endpoint = FCM_ENDPOINT.format(project=project_id)
        self.client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    @staticmethod
    def build_message(payload: NotificationPayload, token: str, metadata: Dict[str, str]) -> Dict[str, object]:
        notification: Dict[str, str] = {"title": payload.title, "body": payload.body}
        if payload.image_url:
            notification["image"] = payload.image_url
        return {
            "message": {
                "token": token,
                "notification": notification,
                "data": {key: str(value) for key, value in metadata.items() if value},
            }
        }

    async def send(
        self, payload: NotificationPayload, tokens: List[str], metadata: Dict[str, str]
    ) -> Dict[str, PushOutcome]:
        results = await asyncio.gather(*(self._send_one(payload, token, metadata) for token in tokens))
        outcomes = {outcome.token: outcome for outcome in results}
        failed = sum(1 for outcome in results if not outcome.success)
        if failed:
            raise DispatchPartialFailure(outcomes, failed)  # type: ignore[arg-type]
        return outcomes

    async def _send_one(self, payload: NotificationPayload, token: str, metadata: Dict[str, str]) -> PushOutcome:
        try:
            response = await self.client.post(self.endpoint, json=self.build_message(payload, token, metadata))
        except httpx.HTTPError as exc:
            return PushOutcome(token=token, success=False, error=f"transport failure: {exc}")
        if response.is_success:
            return PushOutcome(token=token, success=True)
        return PushOutcome(token=token, success=False, error=f"HTTP {response.status_code}: {response.text[:200]}")
