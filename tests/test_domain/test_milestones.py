"""Tests for milestone status evaluation and milestone risk helpers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from opportunity_escrow.domain.enums import MilestoneStatus, RiskLevel
from opportunity_escrow.domain.milestones import (
    assess_milestone_risk,
    evaluate_milestone_status,
    is_overdue,
    should_escalate,
)
from opportunity_escrow.domain.models import Milestone

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
PAST = NOW - timedelta(days=1)
FUTURE = NOW + timedelta(days=10)


def milestone(**overrides: object) -> Milestone:
    values: dict = {"id": "m-1", "title": "Prototype", "target_date": FUTURE}
    values.update(overrides)
    return Milestone(**values)


class TestPrecedence:
    def test_completed_overrides_past_date(self) -> None:
        m = milestone(status="completed", target_date=PAST)
        assert evaluate_milestone_status(m, NOW) is MilestoneStatus.COMPLETED

    def test_cancelled_overrides_past_date(self) -> None:
        m = milestone(status="cancelled", target_date=PAST, completion_percentage=40)
        assert evaluate_milestone_status(m, NOW) is MilestoneStatus.CANCELLED

    def test_pending_with_past_date_is_overdue(self) -> None:
        m = milestone(status="pending", target_date=PAST)
        assert evaluate_milestone_status(m, NOW) is MilestoneStatus.OVERDUE

    def test_overdue_beats_progress(self) -> None:
        m = milestone(target_date=PAST, completion_percentage=90)
        assert evaluate_milestone_status(m, NOW) is MilestoneStatus.OVERDUE

    def test_progress_with_future_date_is_in_progress(self) -> None:
        m = milestone(status="pending", completion_percentage=50)
        assert evaluate_milestone_status(m, NOW) is MilestoneStatus.IN_PROGRESS

    @pytest.mark.parametrize("pct", [None, 0])
    def test_no_progress_is_pending(self, pct: float | None) -> None:
        m = milestone(status="in_progress", completion_percentage=pct)
        assert evaluate_milestone_status(m, NOW) is MilestoneStatus.PENDING

    def test_target_equal_to_now_is_not_overdue(self) -> None:
        m = milestone(target_date=NOW)
        assert evaluate_milestone_status(m, NOW) is MilestoneStatus.PENDING

    def test_naive_datetimes_are_treated_as_utc(self) -> None:
        m = milestone(target_date=PAST.replace(tzinfo=None))
        assert evaluate_milestone_status(m, NOW.replace(tzinfo=None)) is MilestoneStatus.OVERDUE


class TestEscalation:
    def test_cancelled_past_due_still_counts_as_overdue_for_scoring(self) -> None:
        m = milestone(status="cancelled", target_date=PAST)
        assert is_overdue(m, NOW)

    def test_escalates_after_three_days(self) -> None:
        assert not should_escalate(milestone(target_date=NOW - timedelta(days=3)), NOW)
        assert should_escalate(milestone(target_date=NOW - timedelta(days=3, hours=1)), NOW)

    def test_completed_never_escalates(self) -> None:
        m = milestone(status="completed", target_date=NOW - timedelta(days=30))
        assert not should_escalate(m, NOW)


class TestMilestoneRisk:
    def test_empty_plan_is_low_risk(self) -> None:
        assessment = assess_milestone_risk([], NOW)
        assert assessment.risk_level is RiskLevel.LOW
        assert assessment.overdue_count == 0

    def test_one_troubled_in_four_is_medium(self) -> None:
        plan = [
            milestone(id="a", target_date=PAST),
            milestone(id="b"),
            milestone(id="c"),
            milestone(id="d"),
        ]
        assessment = assess_milestone_risk(plan, NOW)
        assert assessment.risk_level is RiskLevel.MEDIUM
        assert assessment.overdue_count == 1

    def test_majority_troubled_is_high(self) -> None:
        plan = [
            milestone(id="a", target_date=PAST),
            milestone(id="b", status="cancelled"),
            milestone(id="c"),
        ]
        assessment = assess_milestone_risk(plan, NOW)
        assert assessment.risk_level is RiskLevel.HIGH
        assert assessment.cancelled_count == 1
