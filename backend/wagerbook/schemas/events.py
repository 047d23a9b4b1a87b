"""Notification event schemas."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class WagerEventType(str, Enum):
    """Lifecycle transitions that produce a notification."""

    WAGER_PROPOSED = "wager_proposed"
    INVITATION_ACCEPTED = "invitation_accepted"
    INVITATION_DECLINED = "invitation_declined"
    OUTCOME_CLAIMED = "outcome_claimed"
    OUTCOME_CONCEDED = "outcome_conceded"
    OUTCOME_CONFIRMED = "outcome_confirmed"
    OUTCOME_DISPUTED = "outcome_disputed"
    CLAIM_EXPIRED = "claim_expired"
    WAGER_CANCELLED = "wager_cancelled"


class WagerEvent(BaseModel):
    """Committed lifecycle transition, addressed to the identities to notify."""

    type: WagerEventType
    wager_id: UUID
    actor_id: Optional[str] = None
    recipients: list[str] = Field(default_factory=list)
    participant_id: Optional[UUID] = None
    detail: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __str__(self) -> str:
        return f"{self.type.value} wager={self.wager_id} actor={self.actor_id}"
