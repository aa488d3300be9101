"""Ledger arithmetic shared by the escrow ledger and its tests."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from opportunity_escrow.domain.enums import TransactionType

CENT = Decimal("0.01")


def quantize(amount: Decimal | int | float | str) -> Decimal:
    """Normalise an amount to two decimal places."""
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def replay_balance(entries: Iterable[tuple[str, Decimal]]) -> Decimal:
    """Net balance implied by (transaction_type, amount) pairs.

    Deposits add; releases, withdrawals, refunds and fees subtract.
    """
    total = Decimal("0")
    for tx_type, amount in entries:
        if TransactionType(tx_type).is_inflow:
            total += amount
        else:
            total -= amount
    return quantize(total)


def calculate_escrow_fee(
    amount: Decimal,
    percentage: Decimal = Decimal("0.01"),
    minimum: Decimal = Decimal("10"),
    maximum: Decimal = Decimal("500"),
) -> Decimal:
    """Percentage fee clamped to [minimum, maximum]."""
    fee = amount * percentage
    return quantize(min(max(fee, minimum), maximum))
