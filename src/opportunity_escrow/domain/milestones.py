"""Milestone status evaluation and milestone-level risk helpers.

Everything here is a pure function of the milestone data and the supplied
clock reading, so results are reproducible in tests and safe to call
concurrently.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from opportunity_escrow.domain.enums import MilestoneStatus, RiskLevel
from opportunity_escrow.domain.models import Milestone, as_utc

ESCALATION_GRACE = timedelta(days=3)


def evaluate_milestone_status(milestone: Milestone, now: datetime) -> MilestoneStatus:
    """Derive the effective status of a milestone. First match wins.

    1. stored status completed -> completed
    2. stored status cancelled -> cancelled
    3. target date in the past -> overdue
    4. completion_percentage > 0 -> in_progress
    5. otherwise -> pending
    """
    if milestone.status is MilestoneStatus.COMPLETED:
        return MilestoneStatus.COMPLETED
    if milestone.status is MilestoneStatus.CANCELLED:
        return MilestoneStatus.CANCELLED
    if milestone.target_date < as_utc(now):
        return MilestoneStatus.OVERDUE
    if milestone.completion_percentage is not None and milestone.completion_percentage > 0:
        return MilestoneStatus.IN_PROGRESS
    return MilestoneStatus.PENDING


def is_overdue(milestone: Milestone, now: datetime) -> bool:
    """Overdue as scored by the rule engine: past due and not completed."""
    return milestone.target_date < as_utc(now) and milestone.status is not MilestoneStatus.COMPLETED


def should_escalate(milestone: Milestone, now: datetime) -> bool:
    """True once an unfinished milestone is more than three days past due."""
    if not is_overdue(milestone, now):
        return False
    return as_utc(now) - milestone.target_date > ESCALATION_GRACE


@dataclass(frozen=True)
class MilestoneRiskAssessment:
    risk_level: RiskLevel
    overdue_count: int
    cancelled_count: int


def assess_milestone_risk(
    milestones: Iterable[Milestone], now: datetime
) -> MilestoneRiskAssessment:
    """Bucket a milestone plan by the share of overdue or cancelled items.

    More than half troubled is high risk, more than a fifth is medium.
    """
    milestones = list(milestones)
    statuses = [evaluate_milestone_status(m, now) for m in milestones]
    overdue_count = statuses.count(MilestoneStatus.OVERDUE)
    cancelled_count = statuses.count(MilestoneStatus.CANCELLED)

    ratio = (overdue_count + cancelled_count) / max(len(milestones), 1)
    if ratio > 0.5:
        level = RiskLevel.HIGH
    elif ratio > 0.2:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.LOW

    return MilestoneRiskAssessment(
        risk_level=level,
        overdue_count=overdue_count,
        cancelled_count=cancelled_count,
    )
