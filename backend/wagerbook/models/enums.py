"""Closed status enumerations for wagers and participants."""

from enum import Enum


class WagerStatus(str, Enum):
    """Aggregate wager status."""

    PROPOSED = "proposed"
    ACTIVE = "active"
    DECLINED = "declined"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ParticipantStatus(str, Enum):
    """Per-participant status."""

    INVITED = "invited"
    ACTIVE = "active"
    DECLINED = "declined"
    OUTCOME_PENDING = "outcome_pending"
    WON = "won"
    LOST = "lost"
    CANCELLED = "cancelled"

    @property
    def is_settled(self) -> bool:
        return self in (ParticipantStatus.WON, ParticipantStatus.LOST)

    @property
    def is_engaged(self) -> bool:
        """Taking part in play: accepted and not yet settled."""
        return self in (ParticipantStatus.ACTIVE, ParticipantStatus.OUTCOME_PENDING)


class Outcome(str, Enum):
    """A declared or pending outcome, from the declaring side's view."""

    WON = "won"
    LOST = "lost"

    @property
    def opposite(self) -> "Outcome":
        return Outcome.LOST if self is Outcome.WON else Outcome.WON

    @property
    def as_status(self) -> ParticipantStatus:
        return ParticipantStatus(self.value)
