"""Aggregate wager status derivation."""

from typing import Iterable

from wagerbook.models import ParticipantStatus, WagerStatus


def aggregate_wager_status(statuses: Iterable[ParticipantStatus]) -> WagerStatus:
    """
    Derive the wager status from its participants' statuses.

    Rules, first match wins:
    1. Every participant declined -> DECLINED
    2. Any participant won or lost -> COMPLETED
    3. Any participant active or outcome pending -> ACTIVE
    4. Otherwise (all invited, or no participants) -> PROPOSED

    CANCELLED is never derived; it is an explicit override applied by
    cancellation and ``recompute_status`` leaves it in place.
    """
    statuses = list(statuses)

    if statuses and all(s is ParticipantStatus.DECLINED for s in statuses):
        return WagerStatus.DECLINED

    if any(s.is_settled for s in statuses):
        return WagerStatus.COMPLETED

    if any(s.is_engaged for s in statuses):
        return WagerStatus.ACTIVE

    return WagerStatus.PROPOSED


def recompute_status(current: WagerStatus, statuses: Iterable[ParticipantStatus]) -> WagerStatus:
    """Recompute a stored wager status, keeping an explicit cancellation."""
    if current is WagerStatus.CANCELLED:
        return current
    return aggregate_wager_status(statuses)
