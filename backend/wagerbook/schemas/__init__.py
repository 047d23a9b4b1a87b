"""Pydantic schemas for requests, results, views and events."""

from wagerbook.schemas.common import BaseSchema, ErrorDetail, OperationResult
from wagerbook.schemas.events import WagerEvent, WagerEventType
from wagerbook.schemas.wager import (
    ActivityItem,
    ConfirmResult,
    DeclareOutcomeRequest,
    DeclareResult,
    DeleteResult,
    EditWagerRequest,
    ExpiryResult,
    ParticipantView,
    ProposeResult,
    ProposeWagerRequest,
    RespondRequest,
    RespondResult,
    WagerDetail,
    WagerStatusResult,
    WagerView,
)

__all__ = [
    "ActivityItem",
    "BaseSchema",
    "ConfirmResult",
    "DeclareOutcomeRequest",
    "DeclareResult",
    "DeleteResult",
    "EditWagerRequest",
    "ErrorDetail",
    "ExpiryResult",
    "OperationResult",
    "ParticipantView",
    "ProposeResult",
    "ProposeWagerRequest",
    "RespondRequest",
    "RespondResult",
    "WagerDetail",
    "WagerEvent",
    "WagerEventType",
    "WagerStatusResult",
    "WagerView",
]
