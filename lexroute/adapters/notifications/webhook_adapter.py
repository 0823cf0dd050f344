"""Notification sinks — JSON webhook delivery via httpx, or plain logging."""

from __future__ import annotations

import asyncio
import logging

import httpx

from lexroute.application.ports.notification_port import NotificationSink
from lexroute.domain.entities.notification import NotificationEvent

logger = logging.getLogger(__name__)


class WebhookNotificationSink(NotificationSink):
    """POSTs each event as JSON to a webhook URL.

    Delivery is fire-and-forget: failures are retried with a short backoff,
    then logged. Nothing is raised to the caller.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        max_retries: int = 2,
        client: httpx.AsyncClient | None = None,
    ):
        self._url = url
        self._timeout = timeout
        self._max_retries = max_retries
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def notify(self, event: NotificationEvent) -> None:
        payload = event.to_payload()
        for attempt in range(1, self._max_retries + 1):
            try:
                client = await self._get_client()
                response = await client.post(self._url, json=payload)
                if response.is_success:
                    logger.debug(
                        "Notification %s for request %s delivered",
                        event.kind.value, event.request_id,
                    )
                    return
                logger.warning(
                    "Webhook returned %d for %s (attempt %d/%d)",
                    response.status_code, event.kind.value, attempt, self._max_retries,
                )
            except httpx.HTTPError as e:
                logger.warning(
                    "Webhook delivery of %s failed (attempt %d/%d): %s",
                    event.kind.value, attempt, self._max_retries, e,
                )
            if attempt < self._max_retries:
                await asyncio.sleep(0.5 * 2 ** (attempt - 1))

        logger.error(
            "Dropping notification %s for request %s after %d attempts",
            event.kind.value, event.request_id, self._max_retries,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class LoggingNotificationSink(NotificationSink):
    """Used when no webhook is configured."""

    async def notify(self, event: NotificationEvent) -> None:
        logger.info(
            "Notification %s: request=%s provider=%s details=%s",
            event.kind.value, event.request_number, event.provider_id, event.details,
        )
