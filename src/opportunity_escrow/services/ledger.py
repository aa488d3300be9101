"""Escrow Ledger — the only component that moves money between balances.

Every mutation runs in its own database transaction: the transaction row and
the balance/status update commit together or not at all. Mutations of one
account are serialised twice over:

    - in-process by an asyncio lock per account (AccountLockRegistry);
    - across processes by the version counter on escrow_accounts, so an
      UPDATE based on a stale read fails with StaleDataError and the
      operation is re-evaluated from a fresh read.

A losing concurrent caller therefore sees a clean InsufficientFundsError or
InvalidStateError instead of a double-spent balance.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError
from statemachine.exceptions import TransitionNotAllowed
from structlog.contextvars import bound_contextvars
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from opportunity_escrow.config import Settings, get_settings
from opportunity_escrow.domain.balances import calculate_escrow_fee, quantize, replay_balance
from opportunity_escrow.domain.enums import (
    EscrowStatus,
    EscrowType,
    TransactionStatus,
    TransactionType,
)
from opportunity_escrow.domain.exceptions import (
    ConcurrentModificationError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidStateError,
    LedgerUnavailableError,
    NotFoundError,
    ReleaseConditionsRequiredError,
)
from opportunity_escrow.domain.state_machine import EscrowStateMachine
from opportunity_escrow.infrastructure.database.orm_models import (
    EscrowAccount,
    EscrowTransaction,
    ReleaseCondition,
)
from opportunity_escrow.infrastructure.database.repositories import (
    EscrowAccountRepository,
    TransactionRepository,
)
from opportunity_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from opportunity_escrow.domain.models import ConditionSpec

logger = get_logger(__name__)

T = TypeVar("T")

ZERO = Decimal("0.00")


class AccountLockRegistry:
    """One asyncio.Lock per escrow account while anyone holds or awaits it.

    An entry is dropped when its last user leaves, so the registry only
    grows with the number of accounts being mutated right now.
    """

    def __init__(self) -> None:
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._users: dict[uuid.UUID, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, account_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(account_id, asyncio.Lock())
        self._users[account_id] = self._users.get(account_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[account_id] -= 1
            if self._users[account_id] == 0:
                del self._users[account_id]
                del self._locks[account_id]


class EscrowLedger:
    """Custodial balances and their append-only transaction log."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        locks: AccountLockRegistry | None = None,
        max_conflict_retries: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._locks = locks if locks is not None else AccountLockRegistry()
        retries = (
            self._settings.ledger_conflict_retries
            if max_conflict_retries is None
            else max_conflict_retries
        )
        self._max_attempts = retries + 1

    # ------------------------------------------------------------------
    # Account Creation
    # ------------------------------------------------------------------

    async def create_account(
        self,
        opportunity_id: uuid.UUID,
        investor_id: str,
        entrepreneur_id: str,
        amount: Decimal,
        conditions: Sequence[ConditionSpec],
        escrow_type: EscrowType = EscrowType.INVESTMENT,
        currency: str | None = None,
        auto_release_date: datetime | None = None,
        admin_notes: str | None = None,
    ) -> EscrowAccount:
        """Open a pending account holding the pledged amount.

        Raises:
            InvalidAmountError: If the pledge is not positive.
            ReleaseConditionsRequiredError: If no release condition is given.
        """
        pledged = quantize(amount)
        if pledged <= ZERO:
            raise InvalidAmountError(f"Escrow amount must be positive (got {pledged})")
        if not conditions:
            raise ReleaseConditionsRequiredError()

        async def work(session: AsyncSession) -> EscrowAccount:
            account = EscrowAccount(
                account_number=_new_account_number(),
                opportunity_id=opportunity_id,
                investor_id=investor_id,
                entrepreneur_id=entrepreneur_id,
                escrow_type=EscrowType(escrow_type).value,
                status=EscrowStatus.PENDING.value,
                total_amount=pledged,
                available_balance=ZERO,
                held_amount=pledged,
                currency=(currency or self._settings.default_currency).upper(),
                auto_release_date=auto_release_date,
                admin_notes=admin_notes,
                conditions=[
                    ReleaseCondition(
                        position=position,
                        condition_type=spec.condition_type.value,
                        description=spec.description,
                        reference_id=spec.reference_id,
                        required_documents=list(spec.required_documents),
                        due_date=spec.due_date,
                    )
                    for position, spec in enumerate(conditions)
                ],
            )
            return await EscrowAccountRepository(session).create(account)

        account = await self._run("create_account", work)
        logger.info(
            "ledger.account_created",
            account_id=str(account.id),
            account_number=account.account_number,
            amount=str(pledged),
            currency=account.currency,
            conditions=len(conditions),
        )
        return account

    # ------------------------------------------------------------------
    # Funding
    # ------------------------------------------------------------------

    async def fund_account(
        self,
        account_id: uuid.UUID,
        amount: Decimal,
        reference: str | None = None,
    ) -> EscrowAccount:
        """Record the investor's deposit and move the pledge into the available balance.

        Raises:
            NotFoundError: If the account does not exist.
            InvalidStateError: If the account is not pending.
            InvalidAmountError: If the deposit differs from the pledged total.
        """
        deposit = quantize(amount)

        async def work(session: AsyncSession) -> EscrowAccount:
            account = await _load(session, account_id)
            new_status = _fire_transition(account, "fund", "fund account")
            if deposit <= ZERO or deposit != account.total_amount:
                raise InvalidAmountError(
                    f"Deposit must equal the pledged amount {account.total_amount} "
                    f"{account.currency} (got {deposit})"
                )

            await _append(
                session,
                account,
                TransactionType.DEPOSIT,
                deposit,
                reference=reference,
                description="Investor deposit",
            )
            account.available_balance = deposit
            account.held_amount = ZERO
            account.status = new_status
            return account

        account = await self._run("fund_account", work, account_id)
        logger.info("ledger.account_funded", account_id=str(account_id), amount=str(deposit))
        return account

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    async def release_funds(
        self,
        account_id: uuid.UUID,
        amount: Decimal,
        recipient_id: str,
        reason: str,
        reference: str | None = None,
    ) -> EscrowAccount:
        """Pay part or all of the available balance out to a recipient.

        A release that empties the account moves it to released; any other
        release leaves it active.

        Raises:
            NotFoundError: If the account does not exist.
            InvalidAmountError: If the amount is not positive.
            InsufficientFundsError: If the amount exceeds the available balance.
            InvalidStateError: If the account is not funded or active.
        """
        requested = quantize(amount)

        async def work(session: AsyncSession) -> EscrowAccount:
            account = await _load(session, account_id)
            await self._debit(
                session,
                account,
                TransactionType.RELEASE,
                requested,
                reference=reference,
                description=reason,
                metadata={"recipient_id": recipient_id},
            )
            return account

        account = await self._run("release_funds", work, account_id)
        logger.info(
            "ledger.funds_released",
            account_id=str(account_id),
            amount=str(requested),
            recipient_id=recipient_id,
            remaining=str(account.available_balance),
            status=account.status,
        )
        return account

    async def charge_fee(
        self,
        account_id: uuid.UUID,
        amount: Decimal | None = None,
        reason: str = "Escrow service fee",
    ) -> EscrowAccount:
        """Deduct the platform fee from the available balance.

        Without an explicit amount the fee is the configured percentage of the
        pledged total, clamped to the configured minimum and maximum.
        """

        async def work(session: AsyncSession) -> EscrowAccount:
            account = await _load(session, account_id)
            fee = (
                quantize(amount)
                if amount is not None
                else calculate_escrow_fee(
                    account.total_amount,
                    percentage=self._settings.escrow_fee_percentage,
                    minimum=self._settings.escrow_fee_minimum,
                    maximum=self._settings.escrow_fee_maximum,
                )
            )
            await self._debit(
                session,
                account,
                TransactionType.FEE,
                fee,
                description=reason,
                fee_amount=fee,
            )
            return account

        account = await self._run("charge_fee", work, account_id)
        logger.info(
            "ledger.fee_charged",
            account_id=str(account_id),
            remaining=str(account.available_balance),
        )
        return account

    # ------------------------------------------------------------------
    # Disputes & Cancellation
    # ------------------------------------------------------------------

    async def dispute_account(self, account_id: uuid.UUID, reason: str) -> EscrowAccount:
        """Freeze a funded or active account pending manual resolution."""

        async def work(session: AsyncSession) -> EscrowAccount:
            account = await _load(session, account_id)
            account.status = _fire_transition(account, "dispute", "dispute account")
            account.admin_notes = _append_note(account.admin_notes, f"Disputed: {reason}")
            return account

        account = await self._run("dispute_account", work, account_id)
        logger.info("ledger.account_disputed", account_id=str(account_id), reason=reason)
        return account

    async def cancel_account(self, account_id: uuid.UUID, reason: str) -> EscrowAccount:
        """Cancel an account, refunding any available balance to the investor.

        The refund and the status change commit in the same transaction. A
        pending account has no deposit to refund; its pledge is cleared.
        """

        async def work(session: AsyncSession) -> EscrowAccount:
            account = await _load(session, account_id)
            new_status = _fire_transition(account, "cancel", "cancel account")
            refund = quantize(account.available_balance)
            if refund > ZERO:
                await _append(
                    session,
                    account,
                    TransactionType.REFUND,
                    refund,
                    description=reason,
                    metadata={"recipient_id": account.investor_id},
                )
            account.available_balance = ZERO
            account.held_amount = ZERO
            account.status = new_status
            account.admin_notes = _append_note(account.admin_notes, f"Cancelled: {reason}")
            return account

        account = await self._run("cancel_account", work, account_id)
        logger.info("ledger.account_cancelled", account_id=str(account_id), reason=reason)
        return account

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_account(self, account_id: uuid.UUID) -> EscrowAccount:
        """Get an account or raise NotFoundError."""
        return await self._run("get_account", lambda session: _load(session, account_id))

    async def get_transactions(self, account_id: uuid.UUID) -> list[EscrowTransaction]:
        """Transaction log of an account, newest first."""

        async def work(session: AsyncSession) -> list[EscrowTransaction]:
            await _load(session, account_id)
            return await TransactionRepository(session).get_by_account(account_id)

        return await self._run("get_transactions", work)

    async def get_accounts_by_user(
        self, user_id: str, role: str | None = None
    ) -> list[EscrowAccount]:
        """Accounts where the user is the investor, the entrepreneur, or either."""
        return await self._run(
            "get_accounts_by_user",
            lambda session: EscrowAccountRepository(session).get_by_user(user_id, role),
        )

    async def get_accounts_by_status(
        self, statuses: Iterable[EscrowStatus]
    ) -> list[EscrowAccount]:
        wanted = list(statuses)
        return await self._run(
            "get_accounts_by_status",
            lambda session: EscrowAccountRepository(session).get_by_status(wanted),
        )

    async def get_escrow_stats(self, user_id: str, role: str | None = None) -> dict[str, Any]:
        """Portfolio summary of a user's accounts."""
        accounts = await self.get_accounts_by_user(user_id, role)

        def count(status: EscrowStatus) -> int:
            return sum(1 for a in accounts if a.status == status.value)

        return {
            "total_accounts": len(accounts),
            "funded_accounts": count(EscrowStatus.FUNDED),
            "active_accounts": count(EscrowStatus.ACTIVE),
            "disputed_accounts": count(EscrowStatus.DISPUTED),
            "total_amount": quantize(sum((a.total_amount for a in accounts), ZERO)),
            "available_balance": quantize(sum((a.available_balance for a in accounts), ZERO)),
            "held_amount": quantize(sum((a.held_amount for a in accounts), ZERO)),
        }

    async def verify_conservation(self, account_id: uuid.UUID) -> bool:
        """Check that the transaction log reproduces the account's balances.

        Once funded, deposits minus every outflow must equal available plus
        held. A pending account has no transactions yet and its pledge sits
        in held_amount.
        """

        async def work(session: AsyncSession) -> bool:
            account = await _load(session, account_id)
            totals = await TransactionRepository(session).totals_by_type(account_id)
            available = quantize(account.available_balance)
            held = quantize(account.held_amount)
            if account.status == EscrowStatus.PENDING.value:
                return not totals and available == ZERO and held == quantize(account.total_amount)
            return replay_balance(totals.items()) == available + held

        balanced = await self._run("verify_conservation", work)
        if not balanced:
            logger.error("ledger.conservation_violated", account_id=str(account_id))
        return balanced

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _debit(
        self,
        session: AsyncSession,
        account: EscrowAccount,
        tx_type: TransactionType,
        amount: Decimal,
        *,
        reference: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        fee_amount: Decimal | None = None,
    ) -> None:
        """Move money out of the available balance, advancing the status."""
        if amount <= ZERO:
            raise InvalidAmountError(f"Amount must be positive (got {amount})")
        available = quantize(account.available_balance)
        if amount > available:
            raise InsufficientFundsError(
                requested=f"{amount} {account.currency}",
                available=f"{available} {account.currency}",
            )

        remaining = available - amount
        event = "full_release" if remaining == ZERO else "partial_release"
        operation = "charge fee" if tx_type is TransactionType.FEE else "release funds"
        new_status = _fire_transition(account, event, operation)

        await _append(
            session,
            account,
            tx_type,
            amount,
            reference=reference,
            description=description,
            metadata=metadata,
            fee_amount=fee_amount,
        )
        account.available_balance = remaining
        account.status = new_status

    async def _run(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        account_id: uuid.UUID | None = None,
    ) -> T:
        """Run ``work`` in its own transaction.

        With an account_id the call holds that account's lock and retries on
        version conflicts, re-reading the account each attempt.
        """
        if account_id is None:
            return await self._attempt(operation, work)

        with bound_contextvars(account_id=str(account_id), operation=operation):
            async with self._locks.hold(account_id):
                try:
                    return await self._conflict_retrying()(self._attempt, operation, work)
                except RetryError as exc:
                    logger.error(
                        "ledger.conflict_retries_exhausted", attempts=self._max_attempts
                    )
                    raise ConcurrentModificationError(
                        str(account_id), self._max_attempts
                    ) from exc

    def _conflict_retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=0.01, max=0.2),
            retry=retry_if_exception_type(StaleDataError),
            before_sleep=_log_version_conflict,
        )

    async def _attempt(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        try:
            async with self._session_factory.begin() as session:
                return await work(session)
        except (OperationalError, TimeoutError) as exc:
            logger.error("ledger.store_unavailable", operation=operation, error=str(exc))
            raise LedgerUnavailableError(str(exc)) from exc


def _log_version_conflict(retry_state: RetryCallState) -> None:
    logger.warning("ledger.version_conflict", attempt=retry_state.attempt_number)


async def _load(session: AsyncSession, account_id: uuid.UUID) -> EscrowAccount:
    account = await EscrowAccountRepository(session).get_by_id(account_id)
    if account is None:
        raise NotFoundError("Escrow account", str(account_id))
    return account


async def _append(
    session: AsyncSession,
    account: EscrowAccount,
    tx_type: TransactionType,
    amount: Decimal,
    *,
    reference: str | None = None,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
    fee_amount: Decimal | None = None,
) -> EscrowTransaction:
    now = datetime.now(UTC)
    transaction = EscrowTransaction(
        account_id=account.id,
        type=tx_type.value,
        amount=amount,
        currency=account.currency,
        reference=reference or _new_reference(tx_type),
        description=description,
        status=TransactionStatus.COMPLETED.value,
        fee_amount=fee_amount,
        metadata_json=metadata,
        transaction_date=now,
        processed_at=now,
    )
    return await TransactionRepository(session).append(transaction)


def _fire_transition(account: EscrowAccount, event_name: str, operation: str) -> str:
    """Validate a transition and return the resulting status.

    Raises InvalidStateError if the transition is illegal.
    """
    sm = EscrowStateMachine(current_status=account.status)
    try:
        getattr(sm, event_name)()
    except TransitionNotAllowed as err:
        raise InvalidStateError(account.status, operation) from err
    return sm.status


def _append_note(notes: str | None, line: str) -> str:
    return f"{notes}\n{line}" if notes else line


def _new_account_number() -> str:
    return f"ESC-{uuid.uuid4().hex[:12].upper()}"


def _new_reference(tx_type: TransactionType) -> str:
    return f"{tx_type.value[:3].upper()}-{uuid.uuid4().hex[:16].upper()}"
