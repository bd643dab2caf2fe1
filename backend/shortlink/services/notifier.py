"""Outbound webhook notifications for the deletion workflow.

The webhook receiver (an automation platform) turns each notice into the
emails sent to the target user and the administrators. Delivery is
best-effort: failures are logged and counted, never raised to the caller.
"""
from __future__ import annotations

import enum
import random
from dataclasses import dataclass
from typing import Any

import anyio
import httpx
from loguru import logger

from shortlink.core.config import get_settings
from shortlink.core.logging import mask_email
from shortlink.core.metrics import record_deletion_notification


class NoticeStatus(str, enum.Enum):
    PENDING_CONFIRMATION = "pending_confirmation"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class WebhookSendError(RuntimeError):
    """Raised when a webhook cannot be delivered."""


class TransientWebhookError(WebhookSendError):
    """Raised when the receiver may accept a later retry."""


@dataclass(slots=True)
class DeletionNotice:
    target_name: str
    target_email: str
    admin_email: str
    admin_name: str
    reason: str
    status: NoticeStatus
    confirm_link: str | None = None
    cancel_link: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "targetName": self.target_name,
            "targetEmail": self.target_email,
            "adminEmail": self.admin_email,
            "adminName": self.admin_name,
            "reason": self.reason,
            "status": self.status.value,
        }
        if self.confirm_link:
            payload["confirmLink"] = self.confirm_link
        if self.cancel_link:
            payload["cancelLink"] = self.cancel_link
        return payload


@dataclass(slots=True)
class WebhookClient:
    """Asynchronous JSON webhook client with retry support."""

    timeout: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None

    async def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        retries: int = 3,
        backoff_base: float = 1.0,
    ) -> None:
        """POST a JSON document with exponential backoff and jitter."""

        attempt = 0
        delay = backoff_base

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    await self._post_once(client, url, payload)
                    return
                except TransientWebhookError as exc:
                    if attempt >= retries:
                        raise WebhookSendError("Exceeded retry attempts") from exc
                    jitter = random.uniform(0, delay / 2)
                    await anyio.sleep(delay + jitter)
                    delay *= 2
                    attempt += 1

    async def _post_once(self, client: httpx.AsyncClient, url: str, payload: dict[str, Any]) -> None:
        try:
            response = await client.post(url, json=payload)
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            raise TransientWebhookError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise WebhookSendError(str(exc)) from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientWebhookError(f"Receiver answered {response.status_code}")
        if response.status_code >= 400:
            raise WebhookSendError(f"Receiver rejected notice with {response.status_code}: {response.text[:200]}")


class DeletionNotifier:
    """Service responsible for deletion workflow notifications."""

    def __init__(
        self,
        client: WebhookClient | None = None,
        *,
        webhook_url: str | None = None,
        completed_webhook_url: str | None = None,
        max_retries: int | None = None,
    ) -> None:
        settings = get_settings()
        self._client = client or WebhookClient(timeout=settings.webhook_timeout_seconds)
        self._webhook_url = webhook_url if webhook_url is not None else settings.deletion_webhook_url
        self._completed_webhook_url = (
            completed_webhook_url if completed_webhook_url is not None else settings.deletion_completed_webhook_url
        )
        self._max_retries = settings.webhook_max_retries if max_retries is None else max_retries

    def _url_for(self, status: NoticeStatus) -> str | None:
        if status is NoticeStatus.COMPLETED and self._completed_webhook_url:
            return self._completed_webhook_url
        return self._webhook_url

    async def notify(self, notice: DeletionNotice) -> bool:
        """Deliver a notice without interrupting the caller. Returns delivery success."""

        log = logger.bind(
            event="deletion_notice",
            status=notice.status.value,
            recipient=mask_email(notice.target_email),
        )
        url = self._url_for(notice.status)
        if not url:
            log.bind(outcome="skipped").info("deletion_notice_skipped_no_webhook")
            record_deletion_notification(notice.status.value, "skipped")
            return False

        try:
            await self._client.post_json(url, notice.to_payload(), retries=self._max_retries)
        except WebhookSendError as exc:
            log.bind(outcome="failure", reason=str(exc)).error("deletion_notice_failed")
            record_deletion_notification(notice.status.value, "failure")
            return False
        except Exception as exc:  # pragma: no cover - defensive logging
            log.bind(outcome="failure", reason=str(exc)).exception("deletion_notice_failed")
            record_deletion_notification(notice.status.value, "failure")
            return False

        log.bind(outcome="success").info("deletion_notice_sent")
        record_deletion_notification(notice.status.value, "success")
        return True


_notifier: DeletionNotifier | None = None


def get_deletion_notifier() -> DeletionNotifier:
    global _notifier
    if _notifier is None:
        _notifier = DeletionNotifier()
    return _notifier


def build_confirm_link(user_id: int, token: str) -> str:
    base = get_settings().public_base_url.rstrip("/")
    return f"{base}/dashboard/admin?deleteUser={user_id}&token={token}"


def build_cancel_link(user_id: int, token: str) -> str:
    base = get_settings().public_base_url.rstrip("/")
    return f"{base}/dashboard/admin?cancelDeletionUser={user_id}&token={token}"


__all__ = [
    "DeletionNotice",
    "DeletionNotifier",
    "NoticeStatus",
    "TransientWebhookError",
    "WebhookClient",
    "WebhookSendError",
    "build_cancel_link",
    "build_confirm_link",
    "get_deletion_notifier",
]
