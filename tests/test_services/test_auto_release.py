"""Tests for the AutoReleaseScheduler."""

from __future__ import annotations

import asyncio
import uuid
from decimal import Decimal

import pytest

from opportunity_escrow.domain.enums import EscrowStatus, TransactionType
from opportunity_escrow.domain.exceptions import LedgerUnavailableError
from opportunity_escrow.services.auto_release import AUTO_RELEASE_REASON, AutoReleaseScheduler
from opportunity_escrow.services.ledger import EscrowLedger
from opportunity_escrow.services.release_conditions import ReleaseConditionTracker


class TestAutoRelease:
    @pytest.mark.asyncio
    async def test_releases_everything_once_conditions_are_met(
        self,
        scheduler: AutoReleaseScheduler,
        tracker: ReleaseConditionTracker,
        ledger: EscrowLedger,
        open_account,
    ) -> None:
        account = await open_account()
        await tracker.handle_milestone_completed("milestone-fit-out")

        assert await scheduler.auto_release_if_conditions_met(account.id)

        account = await ledger.get_account(account.id)
        assert account.status == EscrowStatus.RELEASED.value
        assert account.available_balance == Decimal("0.00")
        release = (await ledger.get_transactions(account.id))[0]
        assert release.type == TransactionType.RELEASE.value
        assert release.amount == Decimal("1000.00")
        assert release.description == AUTO_RELEASE_REASON
        assert release.metadata_json == {"recipient_id": "entrepreneur-1"}

    @pytest.mark.asyncio
    async def test_second_call_is_a_no_op(
        self,
        scheduler: AutoReleaseScheduler,
        tracker: ReleaseConditionTracker,
        ledger: EscrowLedger,
        open_account,
    ) -> None:
        account = await open_account()
        await tracker.handle_milestone_completed("milestone-fit-out")
        await scheduler.auto_release_if_conditions_met(account.id)

        assert not await scheduler.auto_release_if_conditions_met(account.id)
        assert len(await ledger.get_transactions(account.id)) == 2

    @pytest.mark.asyncio
    async def test_unmet_conditions_change_nothing(
        self, scheduler: AutoReleaseScheduler, ledger: EscrowLedger, open_account
    ) -> None:
        account = await open_account()

        assert not await scheduler.auto_release_if_conditions_met(account.id)
        assert (await ledger.get_account(account.id)).available_balance == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_pending_account_is_not_released(
        self, scheduler: AutoReleaseScheduler, tracker: ReleaseConditionTracker, open_account
    ) -> None:
        account = await open_account(fund=False)
        await tracker.handle_milestone_completed("milestone-fit-out")

        assert not await scheduler.auto_release_if_conditions_met(account.id)

    @pytest.mark.asyncio
    async def test_disputed_account_is_not_released(
        self,
        scheduler: AutoReleaseScheduler,
        tracker: ReleaseConditionTracker,
        ledger: EscrowLedger,
        open_account,
    ) -> None:
        account = await open_account()
        await ledger.dispute_account(account.id, "Contested")
        await tracker.handle_milestone_completed("milestone-fit-out")

        assert not await scheduler.auto_release_if_conditions_met(account.id)

    @pytest.mark.asyncio
    async def test_partially_released_account_pays_out_the_rest(
        self,
        scheduler: AutoReleaseScheduler,
        tracker: ReleaseConditionTracker,
        ledger: EscrowLedger,
        open_account,
    ) -> None:
        account = await open_account()
        await ledger.release_funds(
            account.id, Decimal("250.00"), recipient_id="entrepreneur-1", reason="Advance"
        )
        await tracker.handle_milestone_completed("milestone-fit-out")

        assert await scheduler.auto_release_if_conditions_met(account.id)
        assert (await ledger.get_transactions(account.id))[0].amount == Decimal("750.00")
        assert await ledger.verify_conservation(account.id)

    @pytest.mark.asyncio
    async def test_concurrent_triggers_release_once(
        self,
        scheduler: AutoReleaseScheduler,
        tracker: ReleaseConditionTracker,
        ledger: EscrowLedger,
        open_account,
    ) -> None:
        account = await open_account()
        await tracker.handle_milestone_completed("milestone-fit-out")

        results = await asyncio.gather(
            scheduler.auto_release_if_conditions_met(account.id),
            scheduler.auto_release_if_conditions_met(account.id),
        )

        assert sorted(results) == [False, True]
        releases = [
            t for t in await ledger.get_transactions(account.id)
            if t.type == TransactionType.RELEASE.value
        ]
        assert len(releases) == 1


class TestValidateRelease:
    @pytest.mark.asyncio
    async def test_blocking_reasons(
        self, scheduler: AutoReleaseScheduler, open_account
    ) -> None:
        pending = await open_account(fund=False)

        assert await scheduler.validate_release(pending.id) == [
            "Account is not in funded or active status",
            "No funds available for release",
            "Not all release conditions have been met",
        ]

    @pytest.mark.asyncio
    async def test_ready_account_has_no_reasons(
        self, scheduler: AutoReleaseScheduler, tracker: ReleaseConditionTracker, open_account
    ) -> None:
        account = await open_account()
        await tracker.handle_milestone_completed("milestone-fit-out")

        assert await scheduler.validate_release(account.id) == []

    @pytest.mark.asyncio
    async def test_unknown_account(self, scheduler: AutoReleaseScheduler) -> None:
        assert await scheduler.validate_release(uuid.uuid4()) == ["Escrow account not found"]


class TestTriggers:
    @pytest.mark.asyncio
    async def test_milestone_completion_releases_ready_accounts(
        self, scheduler: AutoReleaseScheduler, ledger: EscrowLedger, open_account
    ) -> None:
        funded = await open_account()
        pending = await open_account(fund=False)

        released = await scheduler.on_milestone_completed("milestone-fit-out")

        assert released == [funded.id]
        assert (await ledger.get_account(funded.id)).status == EscrowStatus.RELEASED.value
        assert (await ledger.get_account(pending.id)).status == EscrowStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_sweep_releases_only_ready_accounts(
        self,
        scheduler: AutoReleaseScheduler,
        tracker: ReleaseConditionTracker,
        open_account,
    ) -> None:
        ready = await open_account()
        await tracker.handle_milestone_completed("milestone-fit-out")
        await open_account()

        assert await scheduler.run_once() == [ready.id]
        assert await scheduler.run_once() == []

    @pytest.mark.asyncio
    async def test_sweep_continues_past_a_failing_account(
        self,
        scheduler: AutoReleaseScheduler,
        tracker: ReleaseConditionTracker,
        open_account,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        broken = await open_account()
        healthy = await open_account()
        await tracker.handle_milestone_completed("milestone-fit-out")
        original = scheduler.auto_release_if_conditions_met

        async def flaky(account_id: uuid.UUID) -> bool:
            if account_id == broken.id:
                raise LedgerUnavailableError("database is locked")
            return await original(account_id)

        monkeypatch.setattr(scheduler, "auto_release_if_conditions_met", flaky)

        assert await scheduler.run_once() == [healthy.id]

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_run_sweeps_until_stopped(
        self,
        scheduler: AutoReleaseScheduler,
        tracker: ReleaseConditionTracker,
        ledger: EscrowLedger,
        open_account,
    ) -> None:
        account = await open_account()
        await tracker.handle_milestone_completed("milestone-fit-out")
        stop = asyncio.Event()

        task = asyncio.create_task(scheduler.run(stop))
        for _ in range(200):
            if (await ledger.get_account(account.id)).status == EscrowStatus.RELEASED.value:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=5)

        assert (await ledger.get_account(account.id)).status == EscrowStatus.RELEASED.value
        assert task.done()
