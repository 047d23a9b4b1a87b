"""Per-operation authorization checks.

Every check runs against rows read inside the transaction that performs
the mutation.
"""

from typing import Iterable, Optional

from wagerbook.errors import AuthorizationError
from wagerbook.models import Participant, Wager


class AccessControlGuard:
    """Authorization matrix for the lifecycle operations."""

    def require_caller(self, caller: Optional[str]) -> str:
        if not caller or not caller.strip():
            raise AuthorizationError("No authenticated caller identity")
        return caller

    def authorize_propose(self, caller: str, creator_id: str) -> None:
        if creator_id != caller:
            raise AuthorizationError("A wager can only be proposed in the caller's own name")

    def authorize_respond(self, caller: str, participant: Participant) -> None:
        if participant.responder_id != caller:
            raise AuthorizationError("Only the invited responder may answer this invitation")

    def authorize_declare(self, caller: str, wager: Wager, participant: Participant) -> bool:
        """
        Authorize an outcome declaration on ``participant``.

        Returns True when the caller is the creator declaring through the
        counterparty's row, False when the caller owns the row.
        """
        if participant.responder_id == caller:
            return False
        if wager.creator_id == caller:
            return True
        raise AuthorizationError("Only a party to this wager may declare its outcome")

    def authorize_party(
        self,
        caller: str,
        wager: Wager,
        participants: Iterable[Participant],
    ) -> None:
        """Caller must be the creator or hold a participant row on the wager."""
        if wager.creator_id == caller:
            return
        if any(p.responder_id == caller for p in participants):
            return
        raise AuthorizationError("Caller is not a party to this wager")

    def authorize_confirm(self, caller: str, claim: Participant, counterpart: Participant) -> None:
        if caller not in (claim.responder_id, counterpart.responder_id):
            raise AuthorizationError("Only a party to the pending claim may confirm it")
        if caller == claim.outcome_claimed_by:
            raise AuthorizationError("The author of a claim cannot confirm it")

    def authorize_dispute(self, caller: str, claim: Participant, counterpart: Participant) -> None:
        if caller not in (claim.responder_id, counterpart.responder_id):
            raise AuthorizationError("Only a party to the pending claim may dispute it")

    def authorize_creator(self, caller: str, wager: Wager, action: str) -> None:
        if wager.creator_id != caller:
            raise AuthorizationError(f"Only the creator may {action} this wager")


# Singleton instance
access_guard = AccessControlGuard()
