"""Services module for Wagerbook business logic."""

from wagerbook.services.access_control import AccessControlGuard, access_guard
from wagerbook.services.aggregation import aggregate_wager_status, recompute_status
from wagerbook.services.identity import IdentityProvider, StaticIdentity, SystemIdentity
from wagerbook.services.lifecycle_service import WagerLifecycleService
from wagerbook.services.notifications import (
    LoggingNotifier,
    NotificationDispatcher,
    Notifier,
    WebhookNotifier,
    create_notifier,
)
from wagerbook.services.opponent_resolver import OpponentResolver, opponent_resolver
from wagerbook.services.query_service import WagerQueryService

__all__ = [
    "AccessControlGuard",
    "IdentityProvider",
    "LoggingNotifier",
    "NotificationDispatcher",
    "Notifier",
    "OpponentResolver",
    "StaticIdentity",
    "SystemIdentity",
    "WagerLifecycleService",
    "WagerQueryService",
    "WebhookNotifier",
    "access_guard",
    "aggregate_wager_status",
    "create_notifier",
    "opponent_resolver",
    "recompute_status",
]
