"""
Unit Tests: Notification Dispatch

Test cases:
- Dispatch is fire-and-forget; drain waits for delivery
- A failing notifier is logged, never raised
- Webhook notifier posts the event as JSON
- Notifier selection from config
"""

import asyncio
import json
from uuid import uuid4

import httpx

from wagerbook.config import NotificationConfig
from wagerbook.schemas import WagerEvent, WagerEventType
from wagerbook.services.notifications import (
    LoggingNotifier,
    NotificationDispatcher,
    Notifier,
    WebhookNotifier,
    create_notifier,
)


def _event(event_type=WagerEventType.OUTCOME_CLAIMED) -> WagerEvent:
    return WagerEvent(type=event_type, wager_id=uuid4(), actor_id="bob", recipients=["alice"])


class SlowNotifier(Notifier):
    def __init__(self):
        self.delivered = []

    async def notify(self, event: WagerEvent) -> None:
        await asyncio.sleep(0.01)
        self.delivered.append(event)


class BrokenNotifier(Notifier):
    async def notify(self, event: WagerEvent) -> None:
        raise RuntimeError("notification service unavailable")


def test_dispatch_does_not_wait_for_delivery() -> None:
    notifier = SlowNotifier()
    dispatcher = NotificationDispatcher(notifier)

    async def run() -> None:
        dispatcher.dispatch([_event(), _event()])
        assert notifier.delivered == []
        assert dispatcher.pending == 2

        await dispatcher.drain()
        assert len(notifier.delivered) == 2
        assert dispatcher.pending == 0

    asyncio.run(run())


def test_failed_delivery_is_swallowed_and_logged(caplog) -> None:
    dispatcher = NotificationDispatcher(BrokenNotifier())

    async def run() -> None:
        dispatcher.dispatch([_event()])
        await dispatcher.drain()

    asyncio.run(run())
    assert "Notification delivery failed" in caplog.text


def test_webhook_notifier_posts_event_json() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(204)

    event = _event(WagerEventType.WAGER_CANCELLED)

    async def run() -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = WebhookNotifier("https://hooks.example.com/wagers", client=client)
        await notifier.notify(event)
        await notifier.close()

    asyncio.run(run())

    assert len(requests) == 1
    assert str(requests[0].url) == "https://hooks.example.com/wagers"
    body = json.loads(requests[0].content)
    assert body["type"] == "wager_cancelled"
    assert body["wager_id"] == str(event.wager_id)
    assert body["recipients"] == ["alice"]


def test_webhook_error_status_surfaces_to_dispatcher(caplog) -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    dispatcher = NotificationDispatcher(WebhookNotifier("https://hooks.example.com/x", client=client))

    async def run() -> None:
        dispatcher.dispatch([_event()])
        await dispatcher.drain()
        await dispatcher.notifier.close()

    asyncio.run(run())
    assert "Notification delivery failed" in caplog.text


def test_create_notifier_from_config() -> None:
    assert isinstance(create_notifier(NotificationConfig()), LoggingNotifier)

    webhook = create_notifier(NotificationConfig(webhook_url="https://hooks.example.com/x"))
    assert isinstance(webhook, WebhookNotifier)
    asyncio.run(webhook.close())
