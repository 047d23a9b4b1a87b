"""SQLAlchemy-backed entity store."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence
from uuid import UUID

from sqlalchemy import distinct, or_, select
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from wagerbook.config import DatabaseConfig
from wagerbook.database.session import (
    create_engine_from_settings,
    create_session_factory,
    create_tables,
)
from wagerbook.errors import StoreError, TransientStoreError
from wagerbook.models import Participant, ParticipantStatus, Wager, WagerStatus
from wagerbook.store.base import EntityStore, StoreTransaction

logger = logging.getLogger(__name__)

# PostgreSQL: serialization_failure, deadlock_detected, lock_not_available
_TRANSIENT_SQLSTATES = {"40001", "40P01", "55P03"}
_UNIQUE_VIOLATION = "23505"


def _sqlstate(exc: DBAPIError) -> str | None:
    return getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)


def _is_transient(exc: DBAPIError) -> bool:
    """Serialization conflicts, lock timeouts, lost connections and racing inserts."""
    if exc.connection_invalidated:
        return True
    state = _sqlstate(exc)
    if state in _TRANSIENT_SQLSTATES:
        return True
    if isinstance(exc, IntegrityError):
        # Only a duplicate key can succeed on a re-read; CHECK, NOT NULL and
        # foreign key violations fail the same way every time
        return state == _UNIQUE_VIOLATION or "UNIQUE constraint failed" in str(exc.orig)
    return isinstance(exc, (OperationalError, InterfaceError))


class SqlAlchemyTransaction(StoreTransaction):
    """StoreTransaction over one AsyncSession."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def read_wager(self, wager_id: UUID) -> Optional[Wager]:
        return await self.session.get(Wager, wager_id)

    async def read_wager_for_update(self, wager_id: UUID) -> Optional[Wager]:
        result = await self.session.execute(
            select(Wager)
            .where(Wager.id == wager_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def read_participant(self, participant_id: UUID) -> Optional[Participant]:
        return await self.session.get(Participant, participant_id)

    async def read_participants_for_update(self, wager_id: UUID) -> list[Participant]:
        result = await self.session.execute(
            select(Participant)
            .where(Participant.wager_id == wager_id)
            .order_by(Participant.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def read_participants(self, wager_id: UUID) -> list[Participant]:
        result = await self.session.execute(
            select(Participant)
            .where(Participant.wager_id == wager_id)
            .order_by(Participant.id)
        )
        return list(result.scalars().all())

    async def persist(self, entity: Wager | Participant) -> None:
        self.session.add(entity)
        await self.session.flush()

    async def persist_all(self, entities: Sequence[Wager | Participant]) -> None:
        # One flush per row keeps writes in the global lock order
        for entity in sorted(entities, key=lambda e: e.id):
            self.session.add(entity)
            await self.session.flush()

    async def delete_wager(self, wager: Wager, participants: Sequence[Participant]) -> None:
        for participant in sorted(participants, key=lambda p: p.id):
            await self.session.delete(participant)
        await self.session.flush()
        await self.session.delete(wager)
        await self.session.flush()

    async def list_wagers_for_identity(
        self,
        identity: str,
        status: Optional[WagerStatus] = None,
        limit: int = 100,
    ) -> list[Wager]:
        participating = select(Participant.wager_id).where(
            Participant.responder_id == identity
        )
        query = select(Wager).where(
            or_(Wager.creator_id == identity, Wager.id.in_(participating))
        )

        if status is not None:
            query = query.where(Wager.status == status)

        query = query.order_by(Wager.created_at.desc(), Wager.id).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_participants_for_identity(
        self,
        identity: str,
        limit: int = 50,
    ) -> list[tuple[Participant, Wager]]:
        result = await self.session.execute(
            select(Participant, Wager)
            .join(Wager, Participant.wager_id == Wager.id)
            .where(
                or_(
                    Participant.responder_id == identity,
                    Wager.creator_id == identity,
                )
            )
            # The creator's own row is theirs to act on, never activity for them
            .where(Participant.responder_id != Wager.creator_id)
            .order_by(Participant.updated_at.desc(), Participant.id)
            .limit(limit)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def list_wager_ids_with_claims_before(self, cutoff: datetime) -> list[UUID]:
        result = await self.session.execute(
            select(distinct(Participant.wager_id))
            .where(Participant.status == ParticipantStatus.OUTCOME_PENDING)
            .where(Participant.outcome_claimed_at < cutoff)
        )
        return list(result.scalars().all())


class SqlAlchemyEntityStore(EntityStore):
    """
    Entity store over an async SQLAlchemy engine.

    Usage:
        store = SqlAlchemyEntityStore.from_config(settings.database)
        async with store.transaction() as tx:
            wager = await tx.read_wager_for_update(wager_id)
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.engine = engine
        self._session_factory = session_factory or create_session_factory(engine)
        # Every session shares one connection, so transactions take turns
        self._lock = asyncio.Lock() if isinstance(engine.sync_engine.pool, StaticPool) else None

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "SqlAlchemyEntityStore":
        return cls(create_engine_from_settings(config))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreTransaction]:
        if self._lock is None:
            async with self._session_transaction() as tx:
                yield tx
            return
        async with self._lock:
            async with self._session_transaction() as tx:
                yield tx

    @asynccontextmanager
    async def _session_transaction(self) -> AsyncIterator[StoreTransaction]:
        session = self._session_factory()
        try:
            async with session.begin():
                yield SqlAlchemyTransaction(session)
        except DBAPIError as e:
            if _is_transient(e):
                logger.warning(f"Transient store failure: {e.__class__.__name__}: {e.orig}")
                raise TransientStoreError(
                    "The operation conflicted with a concurrent change or lost "
                    "its connection; retry it"
                ) from e
            logger.error(f"Store rejected write: {e.__class__.__name__}: {e.orig}")
            raise StoreError(f"The store rejected the write: {e.orig}") from e
        finally:
            await session.close()

    async def create_schema(self) -> None:
        await create_tables(self.engine)

    async def dispose(self) -> None:
        await self.engine.dispose()
