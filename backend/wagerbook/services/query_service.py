"""Read-side views of wagers for the calling identity."""

import logging
from typing import Optional
from uuid import UUID

from wagerbook.errors import NotFoundError, ValidationError
from wagerbook.models import ParticipantStatus, WagerStatus
from wagerbook.schemas import (
    ActivityItem,
    OperationResult,
    ParticipantView,
    WagerDetail,
    WagerEvent,
    WagerView,
)
from wagerbook.services.base import TransactionalService, as_uuid
from wagerbook.store import StoreTransaction

logger = logging.getLogger(__name__)


class WagerQueryService(TransactionalService):
    """Wager detail, wager lists and the activity feed."""

    async def get_wager(self, wager_id: UUID | str) -> OperationResult[WagerDetail]:
        """Get a wager with its participants. Visible to its creator and participants."""

        async def work(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> WagerDetail:
            wid = as_uuid(wager_id, "wager id")
            wager = await tx.read_wager(wid)
            if wager is None:
                raise NotFoundError(f"Wager {wid} not found")

            participants = await tx.read_participants(wid)
            self.guard.authorize_party(caller, wager, participants)

            return WagerDetail(
                **WagerView.model_validate(wager).model_dump(),
                participants=[ParticipantView.model_validate(p) for p in participants],
            )

        return await self._run("get_wager", work, wager_id=str(wager_id))

    async def list_wagers(
        self,
        status: Optional[WagerStatus | str] = None,
        limit: int = 100,
    ) -> OperationResult[list[WagerView]]:
        """Wagers the caller created or was invited to, newest first."""

        async def work(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> list[WagerView]:
            wagers = await tx.list_wagers_for_identity(
                caller,
                status=_parse_status(status),
                limit=limit,
            )
            return [WagerView.model_validate(w) for w in wagers]

        return await self._run("list_wagers", work, status=str(status))

    async def list_activity(self, limit: int = 50) -> OperationResult[list[ActivityItem]]:
        """
        Participant-level feed for the caller.

        The caller's own rows show up with the creator as counterparty;
        rows on wagers the caller created show up with the responder as
        counterparty. The store leaves out the creator's own row on their
        wager, so ``limit`` counts only rows that reach the feed.
        """

        async def work(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> list[ActivityItem]:
            rows = await tx.list_participants_for_identity(caller, limit=limit)
            items = []
            for participant, wager in rows:
                is_creator = wager.creator_id == caller
                awaiting = (
                    participant.status is ParticipantStatus.INVITED and not is_creator
                ) or (
                    participant.status is ParticipantStatus.OUTCOME_PENDING
                    and participant.outcome_claimed_by != caller
                )
                items.append(
                    ActivityItem(
                        participant_id=participant.id,
                        wager_id=wager.id,
                        role="creator" if is_creator else "responder",
                        counterparty_id=participant.responder_id if is_creator else wager.creator_id,
                        participant_status=participant.status,
                        pending_outcome=participant.pending_outcome,
                        awaiting_caller=awaiting,
                        wager_description=wager.description,
                        wager_stake=wager.stake,
                        wager_status=wager.status,
                        updated_at=participant.updated_at,
                    )
                )
            return items

        return await self._run("list_activity", work, limit=limit)


def _parse_status(status: Optional[WagerStatus | str]) -> Optional[WagerStatus]:
    if status is None:
        return None
    try:
        return WagerStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown wager status {status!r}")
