"""Wager request, result and view schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from wagerbook.models import Outcome, ParticipantStatus, WagerStatus
from wagerbook.schemas.common import BaseSchema


# ============================================================================
# Requests
# ============================================================================


class ProposeWagerRequest(BaseSchema):
    """Wager proposal payload."""

    description: str
    stake: Decimal
    due_date: Optional[datetime] = None
    responder_ids: list[str] = Field(default_factory=list)


class EditWagerRequest(BaseSchema):
    """Fields a creator may change while the wager is proposed."""

    description: Optional[str] = None
    stake: Optional[Decimal] = None
    due_date: Optional[datetime] = None


class RespondRequest(BaseSchema):
    accept: bool


class DeclareOutcomeRequest(BaseSchema):
    outcome: Outcome


# ============================================================================
# Operation results
# ============================================================================


class ProposeResult(BaseSchema):
    wager_id: UUID
    participant_ids: list[UUID] = Field(default_factory=list)


class RespondResult(BaseSchema):
    wager_status: WagerStatus
    participant_status: ParticipantStatus


class DeclareResult(BaseSchema):
    requires_confirmation: bool
    wager_status: WagerStatus


class ConfirmResult(BaseSchema):
    wager_status: WagerStatus
    final_outcome: Outcome


class WagerStatusResult(BaseSchema):
    """Result of operations that only report the wager status."""

    wager_status: WagerStatus


class DeleteResult(BaseSchema):
    wager_id: UUID
    deleted: bool = True


class ExpiryResult(BaseSchema):
    """Summary of a stale-claim expiry sweep."""

    wagers_examined: int
    claims_expired: int
    wager_ids: list[UUID] = Field(default_factory=list)


# ============================================================================
# Views
# ============================================================================


class ParticipantView(BaseSchema):
    id: UUID
    wager_id: UUID
    responder_id: str
    status: ParticipantStatus
    pending_outcome: Optional[Outcome] = None
    outcome_claimed_by: Optional[str] = None
    outcome_claimed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class WagerView(BaseSchema):
    id: UUID
    description: str
    stake: Decimal
    due_date: Optional[datetime] = None
    creator_id: str
    status: WagerStatus
    created_at: datetime
    settled_at: Optional[datetime] = None


class WagerDetail(WagerView):
    """Wager with its participants."""

    participants: list[ParticipantView] = Field(default_factory=list)


class ActivityItem(BaseSchema):
    """One participant-level entry in a caller's activity feed."""

    participant_id: UUID
    wager_id: UUID
    role: str  # "creator" or "responder"
    counterparty_id: str
    participant_status: ParticipantStatus
    pending_outcome: Optional[Outcome] = None
    awaiting_caller: bool = False
    wager_description: str
    wager_stake: Decimal
    wager_status: WagerStatus
    updated_at: datetime
