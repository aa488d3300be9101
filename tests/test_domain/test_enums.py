"""Tests for domain enumerations."""

from __future__ import annotations

from opportunity_escrow.domain.enums import (
    EscrowStatus,
    OpportunityStatus,
    TransactionType,
)


class TestEscrowStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {"pending", "funded", "active", "released", "disputed", "cancelled"}
        assert {s.value for s in EscrowStatus} == expected

    def test_status_is_str_enum(self) -> None:
        assert isinstance(EscrowStatus.FUNDED, str)
        assert EscrowStatus.FUNDED == "funded"


class TestOpportunityStatus:
    def test_only_closed_is_terminal(self) -> None:
        terminal = [s for s in OpportunityStatus if s.is_terminal]
        assert terminal == [OpportunityStatus.CLOSED]


class TestTransactionType:
    def test_only_deposits_flow_in(self) -> None:
        inflows = {t for t in TransactionType if t.is_inflow}
        assert inflows == {TransactionType.DEPOSIT}
