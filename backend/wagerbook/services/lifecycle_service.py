"""Wager lifecycle and outcome agreement operations."""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Sequence
from uuid import UUID, uuid4

from wagerbook.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from wagerbook.models import (
    Outcome,
    Participant,
    ParticipantStatus,
    Wager,
    WagerStatus,
)
from wagerbook.models.base import utcnow
from wagerbook.schemas import (
    ConfirmResult,
    DeclareResult,
    DeleteResult,
    ExpiryResult,
    OperationResult,
    ProposeResult,
    RespondResult,
    WagerEvent,
    WagerEventType,
    WagerStatusResult,
)
from wagerbook.services.aggregation import recompute_status
from wagerbook.services.base import TransactionalService, as_uuid
from wagerbook.services.opponent_resolver import OpponentResolver, opponent_resolver
from wagerbook.store import StoreTransaction

logger = logging.getLogger(__name__)

_UNSET = object()

# Numeric(15, 2) column bound
_MAX_STAKE = Decimal("1e13")


class WagerLifecycleService(TransactionalService):
    """
    Public operation surface for proposing, answering and settling wagers.

    Each operation runs in exactly one store transaction: the wager row
    is locked first, then all of its participants in ascending id order,
    authorization is checked against those rows, the participant rows
    are updated, the wager status is recomputed, and the transaction
    commits. Every operation returns an ``OperationResult``.
    """

    def __init__(self, *args, resolver: Optional[OpponentResolver] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.resolver = resolver or opponent_resolver

    # ========================================================================
    # Proposal and invitations
    # ========================================================================

    async def propose_wager(
        self,
        description: str,
        stake: Decimal | int | str,
        due_date: Optional[datetime] = None,
        responder_ids: Sequence[str] = (),
        creator_id: Optional[str] = None,
    ) -> OperationResult[ProposeResult]:
        """
        Create a wager in PROPOSED with one INVITED participant per responder.

        ``creator_id`` defaults to the caller and must match it when given.
        """

        async def work(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> ProposeResult:
            creator = creator_id or caller
            self.guard.authorize_propose(caller, creator)

            clean_description = self._validate_description(description)
            clean_stake = self._validate_stake(stake)
            responders = self._validate_responders(creator, responder_ids)

            wager = Wager(
                id=uuid4(),
                description=clean_description,
                stake=clean_stake,
                due_date=due_date,
                creator_id=creator,
                status=WagerStatus.PROPOSED,
            )
            await tx.persist(wager)

            participants = [
                Participant(
                    id=uuid4(),
                    wager_id=wager.id,
                    responder_id=responder,
                    status=ParticipantStatus.INVITED,
                )
                for responder in responders
            ]
            await tx.persist_all(participants)

            logger.info(
                f"Wager {wager.id} proposed by {creator} to {len(responders)} "
                f"responder(s) for ${clean_stake}"
            )
            events.append(
                WagerEvent(
                    type=WagerEventType.WAGER_PROPOSED,
                    wager_id=wager.id,
                    actor_id=creator,
                    recipients=responders,
                    detail={"description": clean_description, "stake": str(clean_stake)},
                )
            )
            return ProposeResult(
                wager_id=wager.id,
                participant_ids=[p.id for p in participants],
            )

        return await self._run("propose_wager", work, responders=len(responder_ids))

    async def respond_to_invitation(
        self,
        participant_id: UUID | str,
        accept: bool,
    ) -> OperationResult[RespondResult]:
        """Accept (-> ACTIVE) or decline (-> DECLINED) an invitation."""

        async def work(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> RespondResult:
            pid = as_uuid(participant_id, "participant id")
            participant, wager, participants = await self._load_by_participant(tx, pid)

            self.guard.authorize_respond(caller, participant)
            self._require_wager_status(
                wager, (WagerStatus.PROPOSED, WagerStatus.ACTIVE), "respond to"
            )
            if participant.status is not ParticipantStatus.INVITED:
                raise InvalidTransitionError(
                    f"Invitation already answered (participant is {participant.status.value})"
                )

            participant.status = (
                ParticipantStatus.ACTIVE if accept else ParticipantStatus.DECLINED
            )
            await tx.persist(participant)
            await self._recompute(tx, wager, participants)

            logger.info(
                f"Participant {participant.id} {'accepted' if accept else 'declined'} "
                f"wager {wager.id} (wager now {wager.status.value})"
            )
            events.append(
                WagerEvent(
                    type=(
                        WagerEventType.INVITATION_ACCEPTED if accept
                        else WagerEventType.INVITATION_DECLINED
                    ),
                    wager_id=wager.id,
                    participant_id=participant.id,
                    actor_id=caller,
                    recipients=[wager.creator_id],
                )
            )
            return RespondResult(
                wager_status=wager.status,
                participant_status=participant.status,
            )

        return await self._run(
            "respond_to_invitation", work, participant_id=str(participant_id), accept=accept
        )

    # ========================================================================
    # Outcome agreement
    # ========================================================================

    async def declare_outcome(
        self,
        participant_id: UUID | str,
        outcome: Outcome | str,
    ) -> OperationResult[DeclareResult]:
        """
        Declare the caller's side as won or lost.

        LOST settles immediately: declarer LOST, opponent WON, wager
        COMPLETED. WON opens a claim: declarer pending WON, opponent
        pending LOST, wager stays ACTIVE until confirmed or disputed.

        The creator may pass the counterparty's row; the creator's own
        row is then resolved, and created if it does not exist yet.
        """

        async def work(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> DeclareResult:
            declared = self._parse_outcome(outcome)
            pid = as_uuid(participant_id, "participant id")
            participant, wager, participants = await self._load_by_participant(tx, pid)

            acting_as_creator = self.guard.authorize_declare(caller, wager, participant)
            self._require_wager_status(wager, (WagerStatus.ACTIVE,), "declare an outcome on")

            self._require_engaged(participant)
            if acting_as_creator:
                opponent = participant
                declarer = await self.resolver.resolve(tx, wager, opponent, participants)
            else:
                declarer = participant
                opponent = await self.resolver.resolve(tx, wager, declarer, participants)

            if declared is Outcome.LOST:
                self._require_concedable(declarer, opponent)
                now = utcnow()
                for row, status in ((declarer, ParticipantStatus.LOST), (opponent, ParticipantStatus.WON)):
                    row.status = status
                    row.pending_outcome = None
                    row.outcome_claimed_by = caller
                    row.outcome_claimed_at = now
                await tx.persist_all([declarer, opponent])
                await self._recompute(tx, wager, participants)

                logger.info(
                    f"Wager {wager.id} settled by concession: {declarer.responder_id} lost, "
                    f"{opponent.responder_id} won"
                )
                events.append(
                    WagerEvent(
                        type=WagerEventType.OUTCOME_CONCEDED,
                        wager_id=wager.id,
                        participant_id=declarer.id,
                        actor_id=caller,
                        recipients=[opponent.responder_id],
                        detail={"winner": opponent.responder_id, "loser": declarer.responder_id},
                    )
                )
                return DeclareResult(requires_confirmation=False, wager_status=wager.status)

            if declarer.status is not ParticipantStatus.ACTIVE or opponent.status is not ParticipantStatus.ACTIVE:
                raise InvalidTransitionError(
                    "An outcome claim is already pending; confirm or dispute it first"
                )

            now = utcnow()
            for row, pending in ((declarer, Outcome.WON), (opponent, Outcome.LOST)):
                row.status = ParticipantStatus.OUTCOME_PENDING
                row.pending_outcome = pending
                row.outcome_claimed_by = caller
                row.outcome_claimed_at = now
            await tx.persist_all([declarer, opponent])
            await self._recompute(tx, wager, participants)

            logger.info(
                f"{declarer.responder_id} claimed a win on wager {wager.id}; "
                f"awaiting {opponent.responder_id}"
            )
            events.append(
                WagerEvent(
                    type=WagerEventType.OUTCOME_CLAIMED,
                    wager_id=wager.id,
                    participant_id=declarer.id,
                    actor_id=caller,
                    recipients=[opponent.responder_id],
                    detail={"claimed_outcome": Outcome.WON.value},
                )
            )
            return DeclareResult(requires_confirmation=True, wager_status=wager.status)

        return await self._run(
            "declare_outcome", work, participant_id=str(participant_id), outcome=str(outcome)
        )

    async def confirm_outcome(self, participant_id: UUID | str) -> OperationResult[ConfirmResult]:
        """Accept the counterparty's pending claim and settle both sides."""

        async def work(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> ConfirmResult:
            pid = as_uuid(participant_id, "participant id")
            participant, wager, participants = await self._load_by_participant(tx, pid)

            self.guard.authorize_party(caller, wager, participants)
            counterpart = self._require_pending_pair(participant, participants)
            self.guard.authorize_confirm(caller, participant, counterpart)

            claim_author = participant.outcome_claimed_by
            for row in (participant, counterpart):
                row.status = row.pending_outcome.as_status
                row.pending_outcome = None
            await tx.persist_all([participant, counterpart])
            await self._recompute(tx, wager, participants)

            caller_row = participant if participant.responder_id == caller else counterpart
            other_row = counterpart if caller_row is participant else participant
            final_outcome = Outcome(caller_row.status.value)

            logger.info(
                f"Wager {wager.id} settled by confirmation: {caller} {final_outcome.value}"
            )
            events.append(
                WagerEvent(
                    type=WagerEventType.OUTCOME_CONFIRMED,
                    wager_id=wager.id,
                    participant_id=caller_row.id,
                    actor_id=caller,
                    recipients=[other_row.responder_id],
                    detail={"claim_author": claim_author, "confirmer_outcome": final_outcome.value},
                )
            )
            return ConfirmResult(wager_status=wager.status, final_outcome=final_outcome)

        return await self._run("confirm_outcome", work, participant_id=str(participant_id))

    async def dispute_outcome(self, participant_id: UUID | str) -> OperationResult[WagerStatusResult]:
        """Reject a pending claim, returning both sides to ACTIVE."""

        async def work(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> WagerStatusResult:
            pid = as_uuid(participant_id, "participant id")
            participant, wager, participants = await self._load_by_participant(tx, pid)

            self.guard.authorize_party(caller, wager, participants)
            counterpart = self._require_pending_pair(participant, participants)
            self.guard.authorize_dispute(caller, participant, counterpart)

            self._reopen_pair(participant, counterpart)
            await tx.persist_all([participant, counterpart])
            await self._recompute(tx, wager, participants)

            other = counterpart if participant.responder_id == caller else participant
            logger.info(f"Outcome claim on wager {wager.id} disputed by {caller}")
            events.append(
                WagerEvent(
                    type=WagerEventType.OUTCOME_DISPUTED,
                    wager_id=wager.id,
                    participant_id=participant.id,
                    actor_id=caller,
                    recipients=[other.responder_id],
                )
            )
            return WagerStatusResult(wager_status=wager.status)

        return await self._run("dispute_outcome", work, participant_id=str(participant_id))

    # ========================================================================
    # Creator actions
    # ========================================================================

    async def cancel_wager(
        self,
        wager_id: UUID | str,
        caller_id: Optional[str] = None,
    ) -> OperationResult[WagerStatusResult]:
        """Cancel a proposed or active wager that has no claim or settlement."""

        async def work(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> WagerStatusResult:
            self._require_same_caller(caller, caller_id)
            wid = as_uuid(wager_id, "wager id")
            wager, participants = await self._load_wager(tx, wid)

            self.guard.authorize_creator(caller, wager, "cancel")
            self._require_wager_status(
                wager, (WagerStatus.PROPOSED, WagerStatus.ACTIVE), "cancel"
            )
            blocking = [
                p for p in participants
                if p.status in (
                    ParticipantStatus.OUTCOME_PENDING,
                    ParticipantStatus.WON,
                    ParticipantStatus.LOST,
                )
            ]
            if blocking:
                raise InvalidTransitionError(
                    "A wager with a pending claim or a settled participant cannot be cancelled"
                )

            for participant in participants:
                participant.status = ParticipantStatus.CANCELLED
                participant.clear_claim()
            await tx.persist_all(participants)

            wager.status = WagerStatus.CANCELLED
            await tx.persist(wager)

            logger.info(f"Wager {wager.id} cancelled by {caller}")
            events.append(
                WagerEvent(
                    type=WagerEventType.WAGER_CANCELLED,
                    wager_id=wager.id,
                    actor_id=caller,
                    recipients=[p.responder_id for p in participants if p.responder_id != caller],
                )
            )
            return WagerStatusResult(wager_status=wager.status)

        return await self._run("cancel_wager", work, wager_id=str(wager_id))

    async def edit_wager(
        self,
        wager_id: UUID | str,
        description: Optional[str] = None,
        stake: Optional[Decimal | int | str] = None,
        due_date=_UNSET,
    ) -> OperationResult[WagerStatusResult]:
        """Change terms while the wager is still PROPOSED. Omitted fields are kept."""

        async def work(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> WagerStatusResult:
            wid = as_uuid(wager_id, "wager id")
            wager, _ = await self._load_wager(tx, wid)

            self.guard.authorize_creator(caller, wager, "edit")
            self._require_wager_status(wager, (WagerStatus.PROPOSED,), "edit")

            if description is not None:
                wager.description = self._validate_description(description)
            if stake is not None:
                wager.stake = self._validate_stake(stake)
            if due_date is not _UNSET:
                wager.due_date = due_date
            await tx.persist(wager)

            logger.info(f"Wager {wager.id} edited by {caller}")
            return WagerStatusResult(wager_status=wager.status)

        return await self._run("edit_wager", work, wager_id=str(wager_id))

    async def delete_wager(self, wager_id: UUID | str) -> OperationResult[DeleteResult]:
        """Hard-delete a PROPOSED wager nobody has answered yet."""

        async def work(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> DeleteResult:
            wid = as_uuid(wager_id, "wager id")
            wager, participants = await self._load_wager(tx, wid)

            self.guard.authorize_creator(caller, wager, "delete")
            self._require_wager_status(wager, (WagerStatus.PROPOSED,), "delete")
            if any(p.status is not ParticipantStatus.INVITED for p in participants):
                raise InvalidTransitionError(
                    "A wager cannot be deleted once any participant has responded; cancel it instead"
                )

            await tx.delete_wager(wager, participants)
            logger.info(f"Wager {wid} deleted by {caller}")
            return DeleteResult(wager_id=wid)

        return await self._run("delete_wager", work, wager_id=str(wager_id))

    # ========================================================================
    # Maintenance
    # ========================================================================

    async def expire_stale_claims(
        self,
        now: Optional[datetime] = None,
    ) -> OperationResult[ExpiryResult]:
        """
        Auto-dispute outcome claims older than ``claim_expiry_days``.

        Each affected wager is processed in its own transaction. Disabled
        (no-op) when no expiry is configured.
        """
        if self.config.claim_expiry_days is None:
            return OperationResult.success(ExpiryResult(wagers_examined=0, claims_expired=0))

        now = now or utcnow()
        cutoff = now - timedelta(days=self.config.claim_expiry_days)

        async def find(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> list[UUID]:
            return await tx.list_wager_ids_with_claims_before(cutoff)

        found = await self._run("find_stale_claims", find)
        if not found.ok:
            return OperationResult.failure(found.error)

        expired_ids: list[UUID] = []
        expired_claims = 0
        for wager_id in found.value:
            result = await self._run(
                "expire_claim",
                self._expire_work(wager_id, cutoff),
                wager_id=str(wager_id),
            )
            if not result.ok:
                logger.warning(f"Could not expire claims on wager {wager_id}: {result.error.message}")
                continue
            if result.value:
                expired_ids.append(wager_id)
                expired_claims += result.value

        logger.info(f"Expired {expired_claims} stale claim(s) across {len(expired_ids)} wager(s)")
        return OperationResult.success(
            ExpiryResult(
                wagers_examined=len(found.value),
                claims_expired=expired_claims,
                wager_ids=expired_ids,
            )
        )

    def _expire_work(self, wager_id: UUID, cutoff: datetime):
        async def work(tx: StoreTransaction, caller: str, events: list[WagerEvent]) -> int:
            wager, participants = await self._load_wager(tx, wager_id)
            stale = [
                p for p in participants
                if p.status is ParticipantStatus.OUTCOME_PENDING
                and p.pending_outcome is Outcome.WON
                and _as_utc(p.outcome_claimed_at) < cutoff
            ]
            for claim in stale:
                counterpart = self.resolver.resolve_pending_counterpart(claim, participants)
                self._reopen_pair(claim, counterpart)
                await tx.persist_all([claim, counterpart])
                events.append(
                    WagerEvent(
                        type=WagerEventType.CLAIM_EXPIRED,
                        wager_id=wager.id,
                        participant_id=claim.id,
                        actor_id=caller,
                        recipients=[claim.responder_id, counterpart.responder_id],
                    )
                )
            if stale:
                await self._recompute(tx, wager, participants)
            return len(stale)

        return work

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _load_by_participant(
        self,
        tx: StoreTransaction,
        participant_id: UUID,
    ) -> tuple[Participant, Wager, list[Participant]]:
        """Locate a participant, then lock its wager and every participant row."""
        located = await tx.read_participant(participant_id)
        if located is None:
            raise NotFoundError(f"Participant {participant_id} not found")

        wager, participants = await self._load_wager(tx, located.wager_id)
        for participant in participants:
            if participant.id == participant_id:
                return participant, wager, participants
        raise NotFoundError(f"Participant {participant_id} not found")

    async def _load_wager(
        self,
        tx: StoreTransaction,
        wager_id: UUID,
    ) -> tuple[Wager, list[Participant]]:
        wager = await tx.read_wager_for_update(wager_id)
        if wager is None:
            raise NotFoundError(f"Wager {wager_id} not found")
        participants = await tx.read_participants_for_update(wager.id)
        return wager, participants

    async def _recompute(
        self,
        tx: StoreTransaction,
        wager: Wager,
        participants: Iterable[Participant],
    ) -> None:
        new_status = recompute_status(wager.status, (p.status for p in participants))
        if new_status is not wager.status:
            logger.debug(f"Wager {wager.id}: {wager.status.value} -> {new_status.value}")
            wager.status = new_status
            if new_status is WagerStatus.COMPLETED and wager.settled_at is None:
                wager.settled_at = utcnow()
            await tx.persist(wager)

    def _require_pending_pair(
        self,
        participant: Participant,
        participants: list[Participant],
    ) -> Participant:
        if participant.status is not ParticipantStatus.OUTCOME_PENDING:
            raise InvalidTransitionError("No outcome claim is pending on this participant")
        return self.resolver.resolve_pending_counterpart(participant, participants)

    @staticmethod
    def _reopen_pair(claim: Participant, counterpart: Participant) -> None:
        for row in (claim, counterpart):
            row.status = ParticipantStatus.ACTIVE
            row.clear_claim()

    @staticmethod
    def _require_wager_status(wager: Wager, allowed: tuple[WagerStatus, ...], action: str) -> None:
        if wager.status not in allowed:
            raise InvalidTransitionError(
                f"Cannot {action} a wager that is {wager.status.value}"
            )

    @staticmethod
    def _require_engaged(participant: Participant) -> None:
        if not participant.status.is_engaged:
            raise InvalidTransitionError(
                f"Participant is {participant.status.value}; only an accepted "
                "participant can take part in settlement"
            )

    @staticmethod
    def _require_concedable(declarer: Participant, opponent: Participant) -> None:
        """A loss may be declared from ACTIVE, or against a claim the two rows share."""
        if declarer.status is ParticipantStatus.ACTIVE and opponent.status is ParticipantStatus.ACTIVE:
            return
        if (
            declarer.status is ParticipantStatus.OUTCOME_PENDING
            and opponent.status is ParticipantStatus.OUTCOME_PENDING
            and declarer.pending_outcome is not None
            and opponent.pending_outcome is declarer.pending_outcome.opposite
        ):
            return
        raise InvalidTransitionError(
            f"Cannot settle from {declarer.status.value}/{opponent.status.value}"
        )

    @staticmethod
    def _require_same_caller(caller: str, caller_id: Optional[str]) -> None:
        if caller_id is not None and caller_id != caller:
            raise ValidationError("caller_id does not match the authenticated caller")

    @staticmethod
    def _parse_outcome(outcome: Outcome | str) -> Outcome:
        try:
            return Outcome(outcome)
        except ValueError:
            raise ValidationError(f"Outcome must be 'won' or 'lost', got {outcome!r}")

    def _validate_description(self, description: str) -> str:
        cleaned = (description or "").strip()
        if not cleaned:
            raise ValidationError("Description is required")
        if len(cleaned) > self.config.max_description_length:
            raise ValidationError(
                f"Description exceeds {self.config.max_description_length} characters"
            )
        return cleaned

    @staticmethod
    def _validate_stake(stake: Decimal | int | str) -> Decimal:
        try:
            value = Decimal(str(stake))
        except InvalidOperation:
            raise ValidationError(f"Stake must be numeric, got {stake!r}")
        if not value.is_finite():
            raise ValidationError(f"Stake must be numeric, got {stake!r}")
        try:
            value = value.quantize(Decimal("0.01"))
        except InvalidOperation:
            raise ValidationError("Stake is too large")
        if value >= _MAX_STAKE:
            raise ValidationError("Stake is too large")
        if value <= 0:
            raise ValidationError("Stake must be positive")
        return value

    @staticmethod
    def _validate_responders(creator: str, responder_ids: Sequence[str]) -> list[str]:
        responders = [r.strip() for r in responder_ids if r and r.strip()]
        if not responders:
            raise ValidationError("At least one responder is required")
        if creator in responders:
            raise ValidationError("The creator cannot invite themselves")
        if len(set(responders)) != len(responders):
            raise ValidationError("Each responder may be invited only once")
        return responders


def _as_utc(value: datetime) -> datetime:
    """Stores without timezone support return naive UTC datetimes."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
