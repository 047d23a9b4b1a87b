"""
EntityStore Abstract Classes

Storage abstraction for Wager and Participant records.

Every lifecycle operation opens exactly one transaction with
``EntityStore.transaction()`` and performs all reads and writes through
the yielded ``StoreTransaction``. The transaction commits when the block
exits normally and rolls back on any exception. Implementations raise
``TransientStoreError`` for conflicts and connectivity failures.

Lock order: wager row first, then its participant rows in ascending id.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from wagerbook.models import Participant, Wager, WagerStatus


class StoreTransaction(ABC):
    """Transaction-scoped view of the entity store."""

    @abstractmethod
    async def read_wager(self, wager_id: UUID) -> Optional[Wager]:
        """Read a wager without locking it."""

    @abstractmethod
    async def read_wager_for_update(self, wager_id: UUID) -> Optional[Wager]:
        """Read and lock a wager row."""

    @abstractmethod
    async def read_participant(self, participant_id: UUID) -> Optional[Participant]:
        """Read a participant without locking it."""

    @abstractmethod
    async def read_participants_for_update(self, wager_id: UUID) -> list[Participant]:
        """Read and lock every participant of a wager, ascending by id."""

    @abstractmethod
    async def read_participants(self, wager_id: UUID) -> list[Participant]:
        """Read every participant of a wager, ascending by id."""

    @abstractmethod
    async def persist(self, entity: Wager | Participant) -> None:
        """Stage a new or modified entity and flush it."""

    @abstractmethod
    async def persist_all(self, entities: Sequence[Wager | Participant]) -> None:
        """Persist several entities in ascending id order."""

    @abstractmethod
    async def delete_wager(self, wager: Wager, participants: Sequence[Participant]) -> None:
        """Hard-delete a wager along with its participant rows."""

    @abstractmethod
    async def list_wagers_for_identity(
        self,
        identity: str,
        status: Optional[WagerStatus] = None,
        limit: int = 100,
    ) -> list[Wager]:
        """Wagers the identity created or participates in, newest first."""

    @abstractmethod
    async def list_participants_for_identity(
        self,
        identity: str,
        limit: int = 50,
    ) -> list[tuple[Participant, Wager]]:
        """Participant rows relevant to the identity, newest activity first.

        Relevant rows are the identity's own rows plus every row on a
        wager the identity created, except the creator's own row on it.
        """

    @abstractmethod
    async def list_wager_ids_with_claims_before(self, cutoff: datetime) -> list[UUID]:
        """Ids of wagers holding an outcome claim made before ``cutoff``."""


class EntityStore(ABC):
    """Durable transactional storage for wagers and participants."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StoreTransaction]:
        """Open one atomic transaction."""

    @abstractmethod
    async def create_schema(self) -> None:
        """Create the backing tables if they do not exist."""

    @abstractmethod
    async def dispose(self) -> None:
        """Release pooled connections."""
