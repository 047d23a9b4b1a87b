"""Participant database model."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from wagerbook.models.base import BaseModel
from wagerbook.models.enums import Outcome, ParticipantStatus
from wagerbook.models.wager import _enum_values


class Participant(BaseModel):
    """One responder's (or the creator's) record within a wager."""

    __tablename__ = "participants"

    wager_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("wagers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    responder_id = Column(String(64), nullable=False, index=True)

    status = Column(
        Enum(
            ParticipantStatus,
            name="participant_status",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=ParticipantStatus.INVITED,
    )

    # Outcome claim
    pending_outcome = Column(
        Enum(
            Outcome,
            name="pending_outcome",
            native_enum=False,
            length=8,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=True,
    )
    outcome_claimed_by = Column(String(64), nullable=True)
    outcome_claimed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    wager = relationship("Wager", back_populates="participants", lazy="raise")

    # Constraints
    __table_args__ = (
        UniqueConstraint("wager_id", "responder_id", name="uq_participant_wager_responder"),
        CheckConstraint(
            "(status = 'outcome_pending' AND pending_outcome IS NOT NULL "
            "AND outcome_claimed_by IS NOT NULL) "
            "OR (status <> 'outcome_pending' AND pending_outcome IS NULL)",
            name="pending_outcome_matches_status",
        ),
    )

    def clear_claim(self) -> None:
        """Drop the pending outcome and its authorship."""
        self.pending_outcome = None
        self.outcome_claimed_by = None
        self.outcome_claimed_at = None

    def __repr__(self) -> str:
        return f"<Participant {self.id} {self.responder_id} {self.status.value if self.status else None}>"
