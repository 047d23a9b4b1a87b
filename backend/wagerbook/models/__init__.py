"""Database models module."""

from wagerbook.models.enums import Outcome, ParticipantStatus, WagerStatus
from wagerbook.models.participant import Participant
from wagerbook.models.wager import Wager

__all__ = [
    "Outcome",
    "Participant",
    "ParticipantStatus",
    "Wager",
    "WagerStatus",
]
