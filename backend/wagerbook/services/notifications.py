"""Fire-and-forget notification dispatch.

Events are handed to the notifier only after the transaction that
produced them has committed. Delivery runs in background tasks that the
lifecycle operation never awaits; a failed delivery is logged and never
affects the committed state.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Iterable

import httpx

from wagerbook.config import NotificationConfig
from wagerbook.schemas import WagerEvent

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Outbound notification channel."""

    @abstractmethod
    async def notify(self, event: WagerEvent) -> None:
        """Deliver one event."""

    async def close(self) -> None:
        return None


class LoggingNotifier(Notifier):
    """Writes events to the application log."""

    async def notify(self, event: WagerEvent) -> None:
        logger.info(f"Notify {', '.join(event.recipients) or '-'}: {event}")


class WebhookNotifier(Notifier):
    """POSTs each event as JSON to a configured URL."""

    def __init__(self, url: str, timeout_seconds: float = 10.0, client: httpx.AsyncClient | None = None):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def notify(self, event: WagerEvent) -> None:
        response = await self._client.post(self.url, json=event.model_dump(mode="json"))
        response.raise_for_status()
        logger.debug(f"Delivered {event.type.value} to webhook ({response.status_code})")

    async def close(self) -> None:
        await self._client.aclose()


def create_notifier(config: NotificationConfig) -> Notifier:
    """Pick the notifier for the configured delivery channel."""
    if config.webhook_url:
        return WebhookNotifier(config.webhook_url, timeout_seconds=config.timeout_seconds)
    return LoggingNotifier()


class NotificationDispatcher:
    """Schedules deliveries as background tasks and keeps them referenced until done."""

    def __init__(self, notifier: Notifier | None = None):
        self.notifier = notifier or LoggingNotifier()
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, events: Iterable[WagerEvent]) -> None:
        for event in events:
            task = asyncio.create_task(self._deliver(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, event: WagerEvent) -> None:
        try:
            await self.notifier.notify(event)
        except Exception as e:
            logger.warning(f"Notification delivery failed for {event}: {e}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight delivery (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
