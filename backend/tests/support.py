"""Helpers for running lifecycle operations against an in-memory store."""

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Sequence

from wagerbook.config import DatabaseConfig, LifecycleConfig
from wagerbook.models import Participant, ParticipantStatus
from wagerbook.schemas import WagerEvent, WagerEventType
from wagerbook.services import (
    NotificationDispatcher,
    Notifier,
    StaticIdentity,
    WagerLifecycleService,
    WagerQueryService,
)
from wagerbook.store import EntityStore, SqlAlchemyEntityStore

MEMORY_DB = DatabaseConfig(url="sqlite+aiosqlite:///:memory:")


class RecordingNotifier(Notifier):
    """Keeps every delivered event in memory."""

    def __init__(self):
        self.events: list[WagerEvent] = []

    async def notify(self, event: WagerEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: WagerEventType) -> list[WagerEvent]:
        return [e for e in self.events if e.type is event_type]


class WagerEnv:
    """One store, one notifier, and services bound to any caller."""

    def __init__(self, store: EntityStore, config: LifecycleConfig):
        self.store = store
        self.config = config
        self.notifier = RecordingNotifier()
        self.dispatcher = NotificationDispatcher(self.notifier)

    def lifecycle(self, caller: str | None) -> WagerLifecycleService:
        return WagerLifecycleService(
            self.store,
            StaticIdentity(caller),
            dispatcher=self.dispatcher,
            config=self.config,
        )

    def queries(self, caller: str | None) -> WagerQueryService:
        return WagerQueryService(
            self.store,
            StaticIdentity(caller),
            dispatcher=self.dispatcher,
            config=self.config,
        )

    async def participants(self, wager_id) -> dict[str, Participant]:
        """Committed participant rows of a wager, keyed by responder."""
        async with self.store.transaction() as tx:
            rows = await tx.read_participants(wager_id)
        return {p.responder_id: p for p in rows}

    async def statuses(self, wager_id) -> dict[str, ParticipantStatus]:
        return {k: p.status for k, p in (await self.participants(wager_id)).items()}

    async def wager(self, wager_id):
        async with self.store.transaction() as tx:
            return await tx.read_wager(wager_id)

    async def propose(
        self,
        creator: str = "alice",
        responders: Sequence[str] = ("bob",),
        stake: Decimal | str = "10.00",
        description: str = "Lakers win tonight",
    ):
        """Propose a wager and return (wager_id, {responder: participant_id})."""
        result = await self.lifecycle(creator).propose_wager(
            description=description,
            stake=stake,
            responder_ids=list(responders),
        )
        value = result.unwrap()
        return value.wager_id, dict(zip(responders, value.participant_ids))

    async def active_wager(self, creator: str = "alice", responder: str = "bob"):
        """Propose a one-responder wager and have the responder accept it."""
        wager_id, ids = await self.propose(creator, (responder,))
        (await self.lifecycle(responder).respond_to_invitation(ids[responder], True)).unwrap()
        return wager_id, ids[responder]


@asynccontextmanager
async def wager_env(store: EntityStore | None = None, **lifecycle) -> AsyncIterator[WagerEnv]:
    """Fresh in-memory store with the schema created; disposed on exit."""
    store = store or SqlAlchemyEntityStore.from_config(MEMORY_DB)
    await store.create_schema()
    env = WagerEnv(store, LifecycleConfig(**lifecycle))
    try:
        yield env
        await env.dispatcher.drain()
    finally:
        await store.dispose()
