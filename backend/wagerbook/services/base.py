"""Shared transaction runner for Wagerbook services."""

import logging
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID

import logfire

from wagerbook.config import LifecycleConfig
from wagerbook.errors import TransientStoreError, ValidationError, WagerError
from wagerbook.schemas import ErrorDetail, OperationResult, WagerEvent
from wagerbook.services.access_control import AccessControlGuard, access_guard
from wagerbook.services.identity import IdentityProvider
from wagerbook.services.notifications import NotificationDispatcher
from wagerbook.store import EntityStore, StoreTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

Work = Callable[[StoreTransaction, str, list[WagerEvent]], Awaitable[T]]


def as_uuid(value: UUID | str, label: str) -> UUID:
    """Parse an identifier, rejecting malformed input as a validation error."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {label}: {value!r}")


class TransactionalService:
    """
    Base class running each operation as one store transaction.

    ``_run`` resolves the caller, opens a transaction, runs the work
    function, and converts the outcome into an ``OperationResult``.
    ``TransientStoreError`` restarts the whole operation from a fresh
    transaction up to ``max_transient_retries`` times. Events collected
    by the work function are dispatched only after a successful commit.
    """

    def __init__(
        self,
        store: EntityStore,
        identity: IdentityProvider,
        dispatcher: Optional[NotificationDispatcher] = None,
        config: Optional[LifecycleConfig] = None,
        guard: Optional[AccessControlGuard] = None,
    ):
        self.store = store
        self.identity = identity
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.config = config or LifecycleConfig()
        self.guard = guard or access_guard

    async def _run(
        self,
        operation: str,
        work: Work[T],
        **attributes,
    ) -> OperationResult[T]:
        max_attempts = self.config.max_transient_retries + 1

        with logfire.span(f"wager.{operation}", **attributes):
            try:
                caller = self.guard.require_caller(self.identity.current_caller_identity())
            except WagerError as e:
                return self._failure(operation, e)

            for attempt in range(1, max_attempts + 1):
                events: list[WagerEvent] = []
                try:
                    async with self.store.transaction() as tx:
                        value = await work(tx, caller, events)
                except TransientStoreError as e:
                    if attempt < max_attempts:
                        logger.warning(
                            f"{operation} hit a transient store error "
                            f"(attempt {attempt}/{max_attempts}), retrying"
                        )
                        continue
                    return self._failure(operation, e)
                except WagerError as e:
                    return self._failure(operation, e)

                self.dispatcher.dispatch(events)
                return OperationResult.success(value)

        # max_transient_retries is validated non-negative, so the loop always returns
        raise AssertionError("unreachable")

    def _failure(self, operation: str, exc: WagerError) -> OperationResult:
        logger.info(f"{operation} failed: {exc.code}: {exc.message}")
        return OperationResult.failure(ErrorDetail.from_exception(exc))
