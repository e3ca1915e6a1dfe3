from __future__ import annotations

import logging
from typing import Any

from campusmarket.core.config import settings
from campusmarket.services.http_client import MarketHttpClient

log = logging.getLogger(__name__)

# user-facing wording per event type; anything else is audit-only
TITLES: dict[str, str] = {
    "listing.commission_paid": "Commission received, your listing is awaiting review",
    "listing.approved": "Your listing has been approved",
    "listing.rejected": "Your listing was rejected",
    "listing.sold": "Your listing is marked as sold",
    "escrow.opened": "A buyer has paid into escrow",
    "escrow.released": "Escrow released to the seller",
    "escrow.refunded": "Escrow refunded to the buyer",
    "escrow.disputed": "An escrow payment is under dispute",
}


class DeliveryError(Exception):
    def __init__(self, message: str, *, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


def build_notification(event_type: str, payload: dict[str, Any]) -> dict[str, Any] | None:
    title = TITLES.get(event_type)
    if title is None:
        return None

    recipients = [payload.get("seller_id")]
    if event_type.startswith("escrow.") and payload.get("buyer_id"):
        recipients.append(payload["buyer_id"])

    body = payload.get("reason") if event_type in ("listing.rejected", "escrow.refunded") else None
    href = f"/escrow/{payload['escrow_id']}" if "escrow_id" in payload else f"/listings/{payload.get('listing_id')}"
    return {
        "type": event_type,
        "recipients": [r for r in recipients if r],
        "title": title,
        "body": body,
        "href": href,
    }


class NotificationSink:
    """
    Delivers transition events to the notification service.
    Without a webhook configured it only logs, which is what dev and tests use.
    """

    def __init__(self, *, webhook_url: str | None = None, client: MarketHttpClient | None = None):
        self._url = settings.notification_webhook_url if webhook_url is None else webhook_url
        self._client = client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def deliver(self, *, event_id: str, event_type: str, payload: dict[str, Any]) -> None:
        notification = build_notification(event_type, payload)
        if notification is None:
            log.debug("event %s (%s) has no notification", event_id, event_type)
            return

        if not self._url:
            log.info("notify %s -> %s: %s", event_type, notification["recipients"], notification["title"])
            return

        if self._client is None:
            self._client = MarketHttpClient(timeout_seconds=10.0)

        res = await self._client.post_json(url=self._url, json_body=notification, request_id=event_id)
        if not res.ok:
            raise DeliveryError(f"{res.error_code}: {res.error_message}", retryable=res.retryable)
