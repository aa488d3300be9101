"""Auto Release Scheduler — pays out escrow accounts whose conditions are all met.

Two triggers share one code path:
    - on_milestone_completed: a milestone completion event marks the matching
      conditions met and immediately tries the affected accounts;
    - run / run_once: a periodic sweep over every funded or active account.

A full release leaves available_balance at zero, so running either trigger
again for the same account is a no-op.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from opportunity_escrow.domain.balances import quantize
from opportunity_escrow.domain.enums import EscrowStatus
from opportunity_escrow.domain.exceptions import (
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    PortalError,
)
from opportunity_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from opportunity_escrow.services.ledger import EscrowLedger
    from opportunity_escrow.services.release_conditions import ReleaseConditionTracker

logger = get_logger(__name__)

AUTO_RELEASE_REASON = "automatic release — all conditions met"
RELEASABLE_STATUSES = (EscrowStatus.FUNDED, EscrowStatus.ACTIVE)


class AutoReleaseScheduler:
    """Releases escrowed funds to the entrepreneur once every condition is met."""

    def __init__(
        self,
        ledger: EscrowLedger,
        tracker: ReleaseConditionTracker,
        interval_seconds: float = 300,
    ) -> None:
        self._ledger = ledger
        self._tracker = tracker
        self._interval = interval_seconds

    async def auto_release_if_conditions_met(self, account_id: uuid.UUID) -> bool:
        """Release the whole available balance if every condition is met.

        Returns True when funds were released, False otherwise (nothing is
        changed in that case).
        """
        account = await self._ledger.get_account(account_id)
        if account.status not in {s.value for s in RELEASABLE_STATUSES}:
            return False
        available = quantize(account.available_balance)
        if available <= 0:
            return False
        if not await self._tracker.check_release_conditions(account_id):
            return False

        try:
            await self._ledger.release_funds(
                account_id,
                available,
                recipient_id=account.entrepreneur_id,
                reason=AUTO_RELEASE_REASON,
            )
        except (InsufficientFundsError, InvalidStateError) as exc:
            # Another caller changed the account after we read it
            logger.info(
                "auto_release.lost_race",
                account_id=str(account_id),
                code=exc.code,
            )
            return False

        logger.info(
            "auto_release.released",
            account_id=str(account_id),
            amount=str(available),
            recipient_id=account.entrepreneur_id,
        )
        return True

    async def validate_release(self, account_id: uuid.UUID) -> list[str]:
        """Reasons the account cannot be auto-released right now (empty if it can)."""
        try:
            account = await self._ledger.get_account(account_id)
        except NotFoundError:
            return ["Escrow account not found"]

        errors: list[str] = []
        if account.status not in {s.value for s in RELEASABLE_STATUSES}:
            errors.append("Account is not in funded or active status")
        if quantize(account.available_balance) <= 0:
            errors.append("No funds available for release")
        if not await self._tracker.check_release_conditions(account_id):
            errors.append("Not all release conditions have been met")
        return errors

    async def on_milestone_completed(self, milestone_id: str) -> list[uuid.UUID]:
        """Satisfy the milestone's conditions and release any account that is now ready.

        Returns the ids of the accounts that were released.
        """
        touched = await self._tracker.handle_milestone_completed(milestone_id)
        released = [
            account_id
            for account_id in touched
            if await self.auto_release_if_conditions_met(account_id)
        ]
        if released:
            logger.info(
                "auto_release.milestone_triggered",
                milestone_id=milestone_id,
                released=len(released),
            )
        return released

    async def run_once(self) -> list[uuid.UUID]:
        """Sweep every funded or active account. Returns the released account ids."""
        accounts = await self._ledger.get_accounts_by_status(RELEASABLE_STATUSES)
        released: list[uuid.UUID] = []
        for account in accounts:
            try:
                if await self.auto_release_if_conditions_met(account.id):
                    released.append(account.id)
            except PortalError as exc:
                # One failing account must not stop the sweep
                logger.warning(
                    "auto_release.account_failed",
                    account_id=str(account.id),
                    code=exc.code,
                    error=exc.message,
                )
        logger.info("auto_release.sweep_finished", checked=len(accounts), released=len(released))
        return released

    async def run(self, stop_event: asyncio.Event) -> None:
        """Sweep every ``interval_seconds`` until ``stop_event`` is set."""
        logger.info("auto_release.scheduler_started", interval_seconds=self._interval)
        while not stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("auto_release.sweep_failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except TimeoutError:
                continue
        logger.info("auto_release.scheduler_stopped")
