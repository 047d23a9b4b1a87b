"""Counterpart resolution for bilateral settlement."""

import logging
from uuid import uuid4

from wagerbook.errors import OpponentNotFound
from wagerbook.models import Participant, ParticipantStatus, Wager
from wagerbook.store import StoreTransaction

logger = logging.getLogger(__name__)


class OpponentResolver:
    """
    Locates the participant row updated in lock-step with a given row.

    Settlement is strictly bilateral: the creator's side against exactly
    one engaged (active or outcome pending) responder. A wager with more
    than one engaged responder cannot be settled and resolves to
    ``OpponentNotFound``.

    ``participants`` is always the full, locked, id-ordered participant
    list of the wager read in the current transaction. Lazily created
    rows are inserted into it so later steps see them.
    """

    async def resolve(
        self,
        tx: StoreTransaction,
        wager: Wager,
        participant: Participant,
        participants: list[Participant],
    ) -> Participant:
        """Return the opponent of ``participant``, creating the creator's row if needed."""
        if participant.responder_id == wager.creator_id:
            return self._resolve_for_creator(wager, participants)

        others = [
            p for p in participants
            if p.responder_id not in (wager.creator_id, participant.responder_id)
            and p.status.is_engaged
        ]
        if others:
            raise OpponentNotFound(
                f"Wager {wager.id} has more than two engaged sides; "
                "settlement requires exactly one opponent"
            )

        creator_row = self.find_creator_row(wager, participants)
        if creator_row is None:
            creator_row = await self._create_creator_row(tx, wager, participants)
        return creator_row

    def _resolve_for_creator(self, wager: Wager, participants: list[Participant]) -> Participant:
        candidates = sorted(
            (
                p for p in participants
                if p.responder_id != wager.creator_id and p.status.is_engaged
            ),
            key=lambda p: p.id,
        )
        if not candidates:
            raise OpponentNotFound(f"Wager {wager.id} has no engaged opponent")
        if len(candidates) > 1:
            raise OpponentNotFound(
                f"Wager {wager.id} has {len(candidates)} engaged opponents; "
                "settlement requires exactly one"
            )
        return candidates[0]

    def resolve_pending_counterpart(
        self,
        participant: Participant,
        participants: list[Participant],
    ) -> Participant:
        """Return the row holding the opposite side of ``participant``'s pending claim."""
        if participant.pending_outcome is None:
            raise OpponentNotFound(f"Participant {participant.id} holds no pending claim")

        counterparts = [
            p for p in participants
            if p.id != participant.id
            and p.status is ParticipantStatus.OUTCOME_PENDING
            and p.pending_outcome is participant.pending_outcome.opposite
        ]
        if len(counterparts) != 1:
            raise OpponentNotFound(
                f"Pending claim on participant {participant.id} has "
                f"{len(counterparts)} counterparts; expected exactly one"
            )
        return counterparts[0]

    @staticmethod
    def find_creator_row(wager: Wager, participants: list[Participant]) -> Participant | None:
        for p in participants:
            if p.responder_id == wager.creator_id:
                return p
        return None

    async def _create_creator_row(
        self,
        tx: StoreTransaction,
        wager: Wager,
        participants: list[Participant],
    ) -> Participant:
        row = Participant(
            id=uuid4(),
            wager_id=wager.id,
            responder_id=wager.creator_id,
            status=ParticipantStatus.ACTIVE,
        )
        await tx.persist(row)
        participants.append(row)
        participants.sort(key=lambda p: p.id)

        logger.info(f"Created creator participant {row.id} on wager {wager.id}")
        return row


# Singleton instance
opponent_resolver = OpponentResolver()
