"""
Integration Tests: Creator Actions, Claim Expiry and Retries

Test cases:
- Cancel, edit and delete rules
- Stale claim expiry (disabled by default)
- Transient store errors are retried without double-applying
- Constraint violations fail once with store_error
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from support import MEMORY_DB, wager_env
from wagerbook.errors import StoreError, TransientStoreError
from wagerbook.models import ParticipantStatus, Wager, WagerStatus
from wagerbook.models.base import utcnow
from wagerbook.schemas import WagerEventType
from wagerbook.services import SystemIdentity, WagerLifecycleService
from wagerbook.store import EntityStore, SqlAlchemyEntityStore


class FlakyStore(EntityStore):
    """Rolls back the first ``failures`` transactions with a transient error."""

    def __init__(self, inner: EntityStore, failures: int = 1):
        self.inner = inner
        self.failures = failures
        self.attempts = 0

    @asynccontextmanager
    async def transaction(self):
        async with self.inner.transaction() as tx:
            self.attempts += 1
            yield tx
            if self.failures > 0:
                self.failures -= 1
                raise TransientStoreError("could not serialize access due to concurrent update")

    async def create_schema(self) -> None:
        await self.inner.create_schema()

    async def dispose(self) -> None:
        await self.inner.dispose()


# ============================================================================
# Cancel
# ============================================================================


def test_creator_cancels_a_proposed_wager() -> None:
    async def run() -> None:
        async with wager_env() as env:
            wager_id, ids = await env.propose(responders=("bob", "carol"))

            result = await env.lifecycle("alice").cancel_wager(wager_id)
            assert result.value.wager_status is WagerStatus.CANCELLED
            assert set((await env.statuses(wager_id)).values()) == {ParticipantStatus.CANCELLED}

            late = await env.lifecycle("bob").respond_to_invitation(ids["bob"], True)
            assert late.error.code == "invalid_transition"

            await env.dispatcher.drain()
            [event] = env.notifier.of_type(WagerEventType.WAGER_CANCELLED)
            assert sorted(event.recipients) == ["bob", "carol"]

    asyncio.run(run())


def test_creator_cancels_an_active_wager() -> None:
    async def run() -> None:
        async with wager_env() as env:
            wager_id, _ = await env.active_wager()
            result = await env.lifecycle("alice").cancel_wager(wager_id, caller_id="alice")
            assert result.value.wager_status is WagerStatus.CANCELLED

    asyncio.run(run())


def test_cancel_rules() -> None:
    async def run() -> None:
        async with wager_env() as env:
            wager_id, bob_pid = await env.active_wager()

            not_creator = await env.lifecycle("bob").cancel_wager(wager_id)
            assert not_creator.error.code == "authorization_error"

            mismatch = await env.lifecycle("alice").cancel_wager(wager_id, caller_id="bob")
            assert mismatch.error.code == "validation_error"

            await env.lifecycle("bob").declare_outcome(bob_pid, "won")
            pending = await env.lifecycle("alice").cancel_wager(wager_id)
            assert pending.error.code == "invalid_transition"

            await env.lifecycle("alice").confirm_outcome(bob_pid)
            completed = await env.lifecycle("alice").cancel_wager(wager_id)
            assert completed.error.code == "invalid_transition"
            assert (await env.wager(wager_id)).status is WagerStatus.COMPLETED

    asyncio.run(run())


# ============================================================================
# Edit and delete
# ============================================================================


def test_edit_proposed_wager() -> None:
    due = datetime(2030, 1, 1, tzinfo=timezone.utc)

    async def run() -> None:
        async with wager_env() as env:
            wager_id, _ = await env.propose()
            alice = env.lifecycle("alice")

            result = await alice.edit_wager(wager_id, description="Lakers by 10", stake="20", due_date=due)
            assert result.ok
            wager = await env.wager(wager_id)
            assert wager.description == "Lakers by 10"
            assert wager.stake == Decimal("20.00")
            assert wager.due_date is not None

            # Omitted fields are kept, an explicit None clears the due date
            await alice.edit_wager(wager_id, due_date=None)
            wager = await env.wager(wager_id)
            assert wager.description == "Lakers by 10"
            assert wager.due_date is None

            invalid = await alice.edit_wager(wager_id, stake=0)
            assert invalid.error.code == "validation_error"

            not_creator = await env.lifecycle("bob").edit_wager(wager_id, stake=5)
            assert not_creator.error.code == "authorization_error"

    asyncio.run(run())


def test_edit_after_acceptance_is_rejected() -> None:
    async def run() -> None:
        async with wager_env() as env:
            wager_id, _ = await env.active_wager()
            result = await env.lifecycle("alice").edit_wager(wager_id, stake=100)
            assert result.error.code == "invalid_transition"

    asyncio.run(run())


def test_delete_unanswered_wager() -> None:
    async def run() -> None:
        async with wager_env() as env:
            wager_id, ids = await env.propose(responders=("bob", "carol"))

            result = await env.lifecycle("alice").delete_wager(wager_id)
            assert result.value.deleted is True
            assert await env.wager(wager_id) is None
            assert await env.participants(wager_id) == {}

            gone = await env.lifecycle("bob").respond_to_invitation(ids["bob"], True)
            assert gone.error.code == "not_found"

    asyncio.run(run())


def test_delete_after_a_response_is_rejected() -> None:
    async def run() -> None:
        async with wager_env() as env:
            wager_id, ids = await env.propose(responders=("bob", "carol"))
            await env.lifecycle("carol").respond_to_invitation(ids["carol"], False)

            result = await env.lifecycle("alice").delete_wager(wager_id)
            assert result.error.code == "invalid_transition"

            not_creator = await env.lifecycle("bob").delete_wager(wager_id)
            assert not_creator.error.code == "authorization_error"

    asyncio.run(run())


# ============================================================================
# Claim expiry
# ============================================================================


def _maintenance(env) -> WagerLifecycleService:
    return WagerLifecycleService(
        env.store, SystemIdentity(), dispatcher=env.dispatcher, config=env.config
    )


def test_expiry_disabled_by_default() -> None:
    async def run() -> None:
        async with wager_env() as env:
            wager_id, bob_pid = await env.active_wager()
            await env.lifecycle("bob").declare_outcome(bob_pid, "won")

            result = await _maintenance(env).expire_stale_claims(now=utcnow() + timedelta(days=365))
            assert result.value.claims_expired == 0
            assert (await env.statuses(wager_id))["bob"] is ParticipantStatus.OUTCOME_PENDING

    asyncio.run(run())


def test_stale_claims_are_disputed() -> None:
    async def run() -> None:
        async with wager_env(claim_expiry_days=3) as env:
            stale_id, stale_pid = await env.active_wager("alice", "bob")
            fresh_id, fresh_pid = await env.active_wager("carol", "dave")
            await env.lifecycle("bob").declare_outcome(stale_pid, "won")
            await env.lifecycle("dave").declare_outcome(fresh_pid, "won")

            async with env.store.transaction() as tx:
                rows = await tx.read_participants_for_update(stale_id)
                for row in rows:
                    row.outcome_claimed_at = utcnow() - timedelta(days=5)
                await tx.persist_all(rows)

            result = await _maintenance(env).expire_stale_claims()

            assert result.ok
            assert result.value.wagers_examined == 1
            assert result.value.claims_expired == 1
            assert result.value.wager_ids == [stale_id]
            assert (await env.statuses(fresh_id))["dave"] is ParticipantStatus.OUTCOME_PENDING
            assert set((await env.statuses(stale_id)).values()) == {ParticipantStatus.ACTIVE}
            assert (await env.wager(stale_id)).status is WagerStatus.ACTIVE

            await env.dispatcher.drain()
            expired = env.notifier.of_type(WagerEventType.CLAIM_EXPIRED)
            assert any(e.wager_id == stale_id and e.actor_id == "system" for e in expired)

    asyncio.run(run())


# ============================================================================
# Transient store errors
# ============================================================================


def test_transient_error_is_retried_without_double_applying() -> None:
    async def run() -> None:
        async with wager_env() as env:
            wager_id, bob_pid = await env.active_wager()

            flaky = FlakyStore(env.store, failures=1)
            service = WagerLifecycleService(
                flaky, env.lifecycle("bob").identity, dispatcher=env.dispatcher, config=env.config
            )
            result = await service.declare_outcome(bob_pid, "lost")

            assert result.ok
            assert flaky.attempts == 2
            assert await env.statuses(wager_id) == {
                "alice": ParticipantStatus.WON,
                "bob": ParticipantStatus.LOST,
            }

            await env.dispatcher.drain()
            assert len(env.notifier.of_type(WagerEventType.OUTCOME_CONCEDED)) == 1

            # A blind retry of the same call sees the settled state and changes nothing
            retry = await service.declare_outcome(bob_pid, "lost")
            assert retry.error.code == "invalid_transition"

    asyncio.run(run())


def test_retries_are_bounded() -> None:
    async def run() -> None:
        async with wager_env(max_transient_retries=2) as env:
            wager_id, bob_pid = await env.active_wager()

            flaky = FlakyStore(env.store, failures=10)
            service = WagerLifecycleService(
                flaky, env.lifecycle("bob").identity, dispatcher=env.dispatcher, config=env.config
            )
            result = await service.declare_outcome(bob_pid, "won")

            assert result.error.code == "transient_store_error"
            assert result.error.retryable is True
            assert flaky.attempts == 3
            assert (await env.statuses(wager_id))["bob"] is ParticipantStatus.ACTIVE

    asyncio.run(run())


def test_duplicate_keys_surface_as_transient() -> None:
    async def run() -> None:
        store = SqlAlchemyEntityStore.from_config(MEMORY_DB)
        async with wager_env(store=store) as env:
            wager_id, _ = await env.propose()
            wager = await env.wager(wager_id)

            try:
                async with store.transaction() as tx:
                    # Same primary key as an existing row
                    clone = type(wager)(
                        id=wager.id, description="dup", stake=Decimal("1"),
                        creator_id="alice", status=WagerStatus.PROPOSED,
                    )
                    await tx.persist(clone)
            except TransientStoreError as e:
                assert e.retryable
            else:
                raise AssertionError("duplicate insert should fail")

    asyncio.run(run())


def _unpayable_wager() -> Wager:
    return Wager(
        id=uuid4(), description="free bet", stake=Decimal("0"),
        creator_id="alice", status=WagerStatus.PROPOSED,
    )


def test_check_constraint_violation_is_not_transient() -> None:
    async def run() -> None:
        async with wager_env() as env:
            try:
                async with env.store.transaction() as tx:
                    await tx.persist(_unpayable_wager())
            except StoreError as e:
                assert e.code == "store_error"
                assert e.retryable is False
            else:
                raise AssertionError("zero stake should violate positive_stake")

    asyncio.run(run())


class RejectingStore(FlakyStore):
    """Writes a row the schema refuses at the end of every transaction."""

    @asynccontextmanager
    async def transaction(self):
        async with self.inner.transaction() as tx:
            self.attempts += 1
            yield tx
            await tx.persist(_unpayable_wager())


def test_constraint_violation_fails_without_retrying() -> None:
    async def run() -> None:
        async with wager_env(max_transient_retries=3) as env:
            wager_id, bob_pid = await env.active_wager()

            rejecting = RejectingStore(env.store)
            service = WagerLifecycleService(
                rejecting, env.lifecycle("bob").identity, dispatcher=env.dispatcher, config=env.config
            )
            result = await service.declare_outcome(bob_pid, "lost")

            assert result.error.code == "store_error"
            assert result.error.retryable is False
            assert rejecting.attempts == 1
            assert (await env.statuses(wager_id))["bob"] is ParticipantStatus.ACTIVE

            await env.dispatcher.drain()
            assert env.notifier.of_type(WagerEventType.OUTCOME_CONCEDED) == []

    asyncio.run(run())
