"""
Listing-ready notifications, delivered as a JSON webhook (httpx).

The receiving service fans the payload out to the user's push
subscriptions. With no NOTIFY_WEBHOOK_URL configured the notification
is only logged.
"""

from __future__ import annotations

import logging

import httpx

import config

log = logging.getLogger(__name__)


def build_listing_ready_payload(user_id: str, listing_id: str, title: str | None) -> dict:
    return {
        "userId": user_id,
        "title": "Listing Ready!",
        "body": title or "Your listing has been generated",
        "data": {"url": f"/listings/{listing_id}", "listingId": listing_id},
    }


class WebhookNotifier:

    def __init__(self, url: str | None = None, client: httpx.AsyncClient | None = None):
        self.url = url if url is not None else config.NOTIFY_WEBHOOK_URL
        self._client = client

    async def listing_ready(self, user_id: str, listing_id: str, title: str | None) -> bool:
        """Send the notification. Delivery problems are logged, not raised."""
        payload = build_listing_ready_payload(user_id, listing_id, title)
        if not self.url:
            log.info("No notification webhook configured; listing %s ready for %s", listing_id, user_id)
            return False

        client = self._client or httpx.AsyncClient(timeout=httpx.Timeout(10.0))
        try:
            resp = await client.post(self.url, json=payload)
            if resp.status_code >= 400:
                log.warning("Notification webhook returned HTTP %d for listing %s",
                            resp.status_code, listing_id)
                return False
            return True
        except httpx.RequestError as e:
            log.warning("Notification webhook failed for listing %s: %s", listing_id, e)
            return False
        finally:
            if self._client is None:
                await client.aclose()
