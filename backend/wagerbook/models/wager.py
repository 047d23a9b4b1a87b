"""Wager database model."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from wagerbook.models.base import BaseModel
from wagerbook.models.enums import WagerStatus


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Wager(BaseModel):
    """A proposed bet between a creator and one or more responders."""

    __tablename__ = "wagers"

    description = Column(Text, nullable=False)
    stake = Column(Numeric(15, 2), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=True)
    creator_id = Column(String(64), nullable=False, index=True)

    status = Column(
        Enum(
            WagerStatus,
            name="wager_status",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=WagerStatus.PROPOSED,
    )
    settled_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    participants = relationship(
        "Participant",
        back_populates="wager",
        order_by="Participant.id",
        passive_deletes=True,
        lazy="raise",
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("stake > 0", name="positive_stake"),
        Index("idx_wagers_creator_status", "creator_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Wager {self.id} {self.status.value if self.status else None} ${self.stake}>"
