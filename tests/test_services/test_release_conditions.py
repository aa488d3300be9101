"""Tests for the ReleaseConditionTracker."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest

from opportunity_escrow.domain.enums import ConditionType, EscrowStatus
from opportunity_escrow.domain.exceptions import NotFoundError
from opportunity_escrow.domain.models import ConditionSpec, as_utc
from opportunity_escrow.infrastructure.database.orm_models import EscrowAccount
from opportunity_escrow.services.release_conditions import ReleaseConditionTracker

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class TestCheckConditions:
    @pytest.mark.asyncio
    async def test_unmet_condition_blocks_release(
        self, tracker: ReleaseConditionTracker, open_account
    ) -> None:
        account = await open_account()
        assert not await tracker.check_release_conditions(account.id)

    @pytest.mark.asyncio
    async def test_all_met_allows_release(
        self, tracker: ReleaseConditionTracker, open_account
    ) -> None:
        account = await open_account()
        for condition in await tracker.get_release_conditions(account.id):
            await tracker.mark_condition_met(condition.id)

        assert await tracker.check_release_conditions(account.id)

    @pytest.mark.asyncio
    async def test_account_without_conditions_is_never_releasable(
        self,
        tracker: ReleaseConditionTracker,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        # Rows written outside the ledger can lack conditions
        async with session_factory.begin() as session:
            account = EscrowAccount(
                account_number="ESC-LEGACY0001",
                opportunity_id=uuid.uuid4(),
                investor_id="investor-1",
                entrepreneur_id="entrepreneur-1",
                status=EscrowStatus.FUNDED.value,
                total_amount=Decimal("100.00"),
                available_balance=Decimal("100.00"),
                held_amount=Decimal("0.00"),
                currency="USD",
            )
            session.add(account)

        assert not await tracker.check_release_conditions(account.id)

    @pytest.mark.asyncio
    async def test_unknown_account(self, tracker: ReleaseConditionTracker) -> None:
        with pytest.raises(NotFoundError):
            await tracker.check_release_conditions(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_adding_a_condition_reopens_the_gate(
        self, tracker: ReleaseConditionTracker, open_account
    ) -> None:
        account = await open_account()
        await tracker.handle_milestone_completed("milestone-fit-out")
        assert await tracker.check_release_conditions(account.id)

        added = await tracker.add_release_condition(
            account.id,
            ConditionSpec(ConditionType.MANUAL_APPROVAL, "Compliance officer sign-off"),
        )

        assert not added.is_met
        assert not await tracker.check_release_conditions(account.id)
        assert len(await tracker.get_release_conditions(account.id)) == 2

    @pytest.mark.asyncio
    async def test_conditions_keep_attachment_order(
        self, tracker: ReleaseConditionTracker, open_account
    ) -> None:
        descriptions = [f"Sign-off {n}" for n in range(6)]
        account = await open_account(
            conditions=[
                ConditionSpec(ConditionType.MANUAL_APPROVAL, text) for text in descriptions[:5]
            ]
        )
        await tracker.add_release_condition(
            account.id, ConditionSpec(ConditionType.MANUAL_APPROVAL, descriptions[5])
        )

        conditions = await tracker.get_release_conditions(account.id)
        assert [c.description for c in conditions] == descriptions
        assert [c.position for c in conditions] == list(range(6))

    @pytest.mark.asyncio
    async def test_add_condition_to_unknown_account(
        self, tracker: ReleaseConditionTracker
    ) -> None:
        with pytest.raises(NotFoundError):
            await tracker.add_release_condition(
                uuid.uuid4(), ConditionSpec(ConditionType.MANUAL_APPROVAL, "Sign-off")
            )


class TestMarkConditionMet:
    @pytest.mark.asyncio
    async def test_marking_twice_keeps_first_timestamp(
        self, session_factory: async_sessionmaker[AsyncSession], open_account
    ) -> None:
        ticks = iter([NOW, NOW + timedelta(hours=1)])
        tracker = ReleaseConditionTracker(session_factory, clock=lambda: next(ticks))
        account = await open_account()
        condition = (await tracker.get_release_conditions(account.id))[0]

        first = await tracker.mark_condition_met(condition.id)
        second = await tracker.mark_condition_met(condition.id)

        assert first.is_met and second.is_met
        assert as_utc(second.completed_at) == NOW

    @pytest.mark.asyncio
    async def test_unknown_condition(self, tracker: ReleaseConditionTracker) -> None:
        with pytest.raises(NotFoundError):
            await tracker.mark_condition_met(uuid.uuid4())


class TestEvents:
    @pytest.mark.asyncio
    async def test_milestone_completion_satisfies_every_matching_account(
        self, tracker: ReleaseConditionTracker, open_account
    ) -> None:
        first = await open_account()
        second = await open_account(fund=False)

        touched = await tracker.handle_milestone_completed("milestone-fit-out")

        assert set(touched) == {first.id, second.id}
        assert await tracker.check_release_conditions(first.id)
        assert await tracker.handle_milestone_completed("milestone-fit-out") == []

    @pytest.mark.asyncio
    async def test_other_milestones_are_ignored(
        self, tracker: ReleaseConditionTracker, open_account
    ) -> None:
        account = await open_account()

        assert await tracker.handle_milestone_completed("milestone-other") == []
        assert not await tracker.check_release_conditions(account.id)

    @pytest.mark.asyncio
    async def test_document_upload_is_scoped_to_the_account(
        self, tracker: ReleaseConditionTracker, open_account
    ) -> None:
        spec = ConditionSpec(
            ConditionType.DOCUMENT_UPLOAD,
            "Signed shareholder agreement",
            reference_id="shareholder_agreement",
        )
        target = await open_account(conditions=[spec])
        bystander = await open_account(conditions=[spec])

        touched = await tracker.handle_document_uploaded(target.id, "shareholder_agreement")

        assert touched == [target.id]
        assert await tracker.check_release_conditions(target.id)
        assert not await tracker.check_release_conditions(bystander.id)


class TestOverdue:
    @pytest.mark.asyncio
    async def test_overdue_lists_unmet_past_due_conditions(
        self, tracker: ReleaseConditionTracker, open_account
    ) -> None:
        late = ConditionSpec(
            ConditionType.MANUAL_APPROVAL, "Board approval", due_date=NOW - timedelta(days=2)
        )
        early = ConditionSpec(
            ConditionType.MANUAL_APPROVAL, "Final audit", due_date=NOW + timedelta(days=2)
        )
        account = await open_account(conditions=[late, early])

        overdue = await tracker.get_overdue_conditions(now=NOW)
        assert [c.description for c in overdue] == ["Board approval"]

        await tracker.mark_condition_met(overdue[0].id)
        assert await tracker.get_overdue_conditions(now=NOW) == []
        assert len(await tracker.get_release_conditions(account.id)) == 2
