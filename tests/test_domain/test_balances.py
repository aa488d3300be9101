"""Tests for ledger arithmetic helpers."""

from __future__ import annotations

from decimal import Decimal

from opportunity_escrow.domain.balances import calculate_escrow_fee, quantize, replay_balance


class TestReplayBalance:
    def test_deposits_minus_every_outflow(self) -> None:
        entries = [
            ("deposit", Decimal("1000.00")),
            ("release", Decimal("250.00")),
            ("fee", Decimal("10.00")),
            ("refund", Decimal("740.00")),
        ]
        assert replay_balance(entries) == Decimal("0.00")

    def test_empty_log_is_zero(self) -> None:
        assert replay_balance([]) == Decimal("0.00")


class TestEscrowFee:
    def test_percentage_fee(self) -> None:
        assert calculate_escrow_fee(Decimal("5000")) == Decimal("50.00")

    def test_minimum_fee(self) -> None:
        assert calculate_escrow_fee(Decimal("100")) == Decimal("10.00")

    def test_maximum_fee(self) -> None:
        assert calculate_escrow_fee(Decimal("1000000")) == Decimal("500.00")


class TestQuantize:
    def test_rounds_half_up_to_cents(self) -> None:
        assert quantize("10.005") == Decimal("10.01")
        assert quantize(3) == Decimal("3.00")
